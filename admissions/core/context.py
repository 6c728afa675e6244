"""Per-session application context."""

from enum import Enum

from pydantic import BaseModel, ConfigDict


class BranchType(str, Enum):
    """Kind of branch, selects the workflow variant."""

    SCHOOL = "school"
    COLLEGE = "college"


class AppContext(BaseModel):
    """Who is working, and in which branch and academic year.

    Built once when a session (request or CLI run) starts and passed
    explicitly to everything that talks to the ERP. Instances are
    immutable; use the ``with_*`` helpers to derive a changed context.
    """

    branch_type: BranchType = BranchType.SCHOOL
    branch_id: int | None = None
    academic_year_id: int | None = None
    user_name: str | None = None
    access_token: str | None = None

    model_config = ConfigDict(frozen=True)

    def with_branch(self, branch_type: BranchType, branch_id: int | None) -> "AppContext":
        return self.model_copy(update={"branch_type": branch_type, "branch_id": branch_id})

    def erp_headers(self) -> dict[str, str]:
        """Headers forwarded with every ERP request."""
        headers: dict[str, str] = {}
        if self.access_token:
            headers["Authorization"] = f"Bearer {self.access_token}"
        if self.branch_id is not None:
            headers["X-Branch-Id"] = str(self.branch_id)
        if self.academic_year_id is not None:
            headers["X-Academic-Year-Id"] = str(self.academic_year_id)
        return headers

    @property
    def cache_scope(self) -> tuple:
        return (self.branch_type.value, self.branch_id, self.academic_year_id)
