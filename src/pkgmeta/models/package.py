from __future__ import annotations

import datetime
import re
from typing import Literal

from pydantic import BaseModel, ConfigDict, NonNegativeInt, model_validator

PackageType = Literal["npm", "gh"]

_GH_NAME_RE = re.compile(r"^[A-Za-z0-9_.-]+/[A-Za-z0-9_.-]+$")
_NPM_SCOPED_NAME_RE = re.compile(r"^@[^/@]+/[^/@]+$")

PERIOD_DAYS = {"day": 1, "week": 7, "month": 30, "year": 365}


class PackageMetadata(BaseModel):
    """Normalised version list for a package, independent of the source.

    ``versions`` keeps source order: the npm registry variant sorts it by
    descending semver precedence, the GitHub variant keeps API order.
    """

    tags: dict[str, str] = {}
    versions: list[str] = []


class DateRange(BaseModel):
    """Inclusive calendar-day range used by the stats queries."""

    model_config = ConfigDict(frozen=True)

    start: datetime.date
    end: datetime.date

    @classmethod
    def for_period(cls, period: str, today: datetime.date | None = None) -> DateRange:
        """Range of the last full ``period`` (day, week, month, year) ending yesterday."""
        if period not in PERIOD_DAYS:
            raise ValueError(f"Unknown period: {period!r}")
        end = (today or datetime.datetime.now(datetime.UTC).date()) - datetime.timedelta(days=1)
        return cls(start=end - datetime.timedelta(days=PERIOD_DAYS[period] - 1), end=end)

    @model_validator(mode="after")
    def check_order(self) -> DateRange:
        if self.start > self.end:
            raise ValueError(f"Date range start {self.start} is after end {self.end}")
        return self


class PackageQuery(BaseModel):
    """Immutable request context handed to every handler."""

    model_config = ConfigDict(frozen=True)

    type: PackageType
    name: str
    version: str = ""
    date_range: DateRange | None = None

    @model_validator(mode="after")
    def check_name(self) -> PackageQuery:
        if not self.name or len(self.name) > 214:
            raise ValueError(f"Invalid package name: {self.name!r}")
        if self.type == "gh" and not _GH_NAME_RE.match(self.name):
            raise ValueError(f"GitHub packages must be named <owner>/<repo>, got {self.name!r}")
        scoped = self.type == "npm" and self.name.startswith("@")
        if scoped and not _NPM_SCOPED_NAME_RE.match(self.name):
            raise ValueError(f"Scoped npm packages must be named @<scope>/<name>: {self.name!r}")
        return self

    @property
    def owner(self) -> str:
        return self.name.split("/", 1)[0]

    @property
    def repo(self) -> str:
        return self.name.split("/", 1)[1]

    @property
    def metadata_key(self) -> str:
        return f"package/{self.type}/{self.name}/metadata"

    @property
    def files_key(self) -> str:
        return f"package/{self.type}/{self.name}@{self.version}/files"


class FileHitRecord(BaseModel):
    """Hit count of one file on one day."""

    file: str
    date: datetime.date
    hits: NonNegativeInt
