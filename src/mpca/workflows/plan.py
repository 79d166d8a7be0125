from __future__ import annotations

import logging

from mpca.config import MpcaConfig
from mpca.errors import FeatureAlreadyExists, MpcaError, NotARepository
from mpca.feature import FeaturePaths
from mpca.state.record import StateRecord, utcnow_iso
from mpca.tools.base import FilesystemAdapter, VersionControlAdapter

logger = logging.getLogger(__name__)

STATE_HEADER = "MPCA workflow state for feature: {slug}"

OVERVIEW_TEMPLATE = """\
# Feature: {slug}

## Overview
This document provides a high-level overview of the feature.

## Goals
- Goal 1
- Goal 2

## Non-Goals
- Non-goal 1

## Success Criteria
- [ ] Criterion 1
- [ ] Criterion 2
"""

REQUIREMENTS_TEMPLATE = """\
# Requirements: {slug}

## Functional Requirements
1. Requirement 1
2. Requirement 2

## Non-Functional Requirements
1. Performance: TBD
2. Security: TBD
3. Compatibility: TBD

## Constraints
- Constraint 1
- Constraint 2
"""

DESIGN_TEMPLATE = """\
# Design: {slug}

## Architecture
Describe the high-level architecture and component interactions.

## Data Structures
List and describe key data structures.

## API Design
Document public interfaces and contracts.

## Implementation Plan
1. Step 1
2. Step 2
3. Step 3

## Testing Strategy
Describe testing approach and coverage goals.
"""

VERIFICATION_TEMPLATE = """\
# Verification: {slug}

## Acceptance Criteria
- [ ] All tests pass
- [ ] Code follows project conventions
- [ ] Documentation is complete

## Test Cases
1. Test case 1
2. Test case 2

## Manual Verification Steps
1. Step 1
2. Step 2
"""


def initial_state_record(slug: str) -> StateRecord:
    now = utcnow_iso()
    record = StateRecord()
    record.comment(STATE_HEADER.format(slug=slug))
    record.set("feature_slug", slug)
    record.set("phase", "Plan")
    record.set("step", 0)
    record.set("turns", 0)
    record.set("cost_usd", 0.0)
    record.set("created_at", now)
    record.set("updated_at", now)
    return record


def plan_feature(
    config: MpcaConfig, slug: str, fs: FilesystemAdapter, vcs: VersionControlAdapter
) -> FeaturePaths:
    """Create a feature's directories, placeholder documents and initial state.

    Plan is create-only: a second call for the same slug raises
    FeatureAlreadyExists. Files written before a failure are left in place.
    """
    paths = FeaturePaths.for_slug(config, slug)
    if fs.exists(paths.root):
        raise FeatureAlreadyExists(slug)

    try:
        fs.create_dir_all(paths.specs_dir)
        fs.create_dir_all(paths.docs_dir)
        initial_state_record(slug).save(fs, paths.state_file)
        for path, template in (
            (paths.overview, OVERVIEW_TEMPLATE),
            (paths.requirements, REQUIREMENTS_TEMPLATE),
            (paths.design, DESIGN_TEMPLATE),
            (paths.verification, VERIFICATION_TEMPLATE),
        ):
            fs.write(path, template.format(slug=slug))
    except MpcaError as exc:
        exc.add_note(f"while planning feature '{slug}'")
        raise

    if not vcs.is_repository(config.repo_root):
        raise NotARepository(config.repo_root)

    logger.info("planned feature %s in %s", slug, paths.specs_dir)
    return paths
