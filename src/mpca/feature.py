from __future__ import annotations

import re
from dataclasses import dataclass
from pathlib import Path

from mpca.config import MpcaConfig
from mpca.errors import InvalidFeatureSlug

SLUG_MIN_LENGTH = 3
SLUG_MAX_LENGTH = 50
SLUG_CHARSET_PATTERN = re.compile(r"[a-z0-9-]+")

STATE_FILENAME = "state.toml"
REPORT_FILENAME = "verification_report.md"


def validate_feature_slug(slug: str) -> str:
    """Return ``slug`` unchanged or raise :class:`InvalidFeatureSlug` naming the broken rule."""
    if not isinstance(slug, str):
        raise InvalidFeatureSlug(str(slug), "slug must be a string")
    if not SLUG_MIN_LENGTH <= len(slug) <= SLUG_MAX_LENGTH:
        raise InvalidFeatureSlug(
            slug, f"length must be between {SLUG_MIN_LENGTH} and {SLUG_MAX_LENGTH} characters"
        )
    if not SLUG_CHARSET_PATTERN.fullmatch(slug):
        raise InvalidFeatureSlug(slug, "only lowercase letters, digits and hyphens are allowed")
    if not slug[0].isalpha():
        raise InvalidFeatureSlug(slug, "must start with a lowercase letter")
    if "--" in slug:
        raise InvalidFeatureSlug(slug, "consecutive hyphens are not allowed")
    return slug


@dataclass(frozen=True, slots=True)
class FeaturePaths:
    slug: str
    root: Path
    specs_dir: Path
    docs_dir: Path
    worktree: Path
    branch: str

    @classmethod
    def for_slug(cls, config: MpcaConfig, slug: str) -> FeaturePaths:
        validate_feature_slug(slug)
        root = config.specs_dir / slug
        return cls(
            slug=slug,
            root=root,
            specs_dir=root / "specs",
            docs_dir=root / "docs",
            worktree=config.trees_dir / slug,
            branch=config.git.branch_for(slug),
        )

    @property
    def state_file(self) -> Path:
        return self.specs_dir / STATE_FILENAME

    @property
    def overview(self) -> Path:
        return self.specs_dir / "README.md"

    @property
    def requirements(self) -> Path:
        return self.specs_dir / "requirements.md"

    @property
    def design(self) -> Path:
        return self.specs_dir / "design.md"

    @property
    def verification(self) -> Path:
        return self.specs_dir / "verify.md"

    @property
    def report(self) -> Path:
        return self.root / REPORT_FILENAME

    @property
    def documents(self) -> tuple[Path, ...]:
        return (self.overview, self.requirements, self.design, self.verification)
