"""
SpecGraph Models - Data classes for document graph entities.

Field values are kept as plain strings: documents are hand-edited and may
carry values outside the known vocabulary. The enums below publish that
vocabulary and the defaults used when a value is absent.
"""

from dataclasses import asdict, dataclass, field
from enum import Enum


class DocumentType(str, Enum):
    """Kind of specification document."""

    CAPABILITY = "capability"
    ENABLER = "enabler"


class Approval(str, Enum):
    """Approval state shared by capabilities, enablers and requirements."""

    NOT_APPROVED = "Not Approved"
    PENDING = "Pending"
    APPROVED = "Approved"


class Priority(str, Enum):
    """Priority of a capability or enabler."""

    HIGH = "High"
    MEDIUM = "Medium"
    LOW = "Low"


class RequirementPriority(str, Enum):
    """MoSCoW priority of a requirement."""

    MUST_HAVE = "Must Have"
    SHOULD_HAVE = "Should Have"
    COULD_HAVE = "Could Have"
    WONT_HAVE = "Won't Have"


class CapabilityStatus(str, Enum):
    """Lifecycle of a capability."""

    IN_DRAFT = "In Draft"
    READY_FOR_ANALYSIS = "Ready for Analysis"
    IN_ANALYSIS = "In Analysis"
    READY_FOR_DESIGN = "Ready for Design"
    IN_DESIGN = "In Design"
    READY_FOR_IMPLEMENTATION = "Ready for Implementation"
    IN_IMPLEMENTATION = "In Implementation"
    IMPLEMENTED = "Implemented"


class EnablerStatus(str, Enum):
    """Lifecycle of an enabler."""

    IN_DRAFT = "In Draft"
    READY_FOR_ANALYSIS = "Ready for Analysis"
    IN_ANALYSIS = "In Analysis"
    READY_FOR_DESIGN = "Ready for Design"
    IN_DESIGN = "In Design"
    READY_FOR_IMPLEMENTATION = "Ready for Implementation"
    IN_IMPLEMENTATION = "In Implementation"
    IMPLEMENTED = "Implemented"
    READY_FOR_REFACTOR = "Ready for Refactor"
    IN_REFACTOR = "In Refactor"
    READY_FOR_RETIREMENT = "Ready for Retirement"
    IN_RETIREMENT = "In Retirement"
    RETIRED = "Retired"


class RequirementStatus(str, Enum):
    """Lifecycle of a requirement."""

    IN_DRAFT = "In Draft"
    READY_FOR_DESIGN = "Ready for Design"
    READY_FOR_IMPLEMENTATION = "Ready for Implementation"
    READY_FOR_REFACTOR = "Ready for Refactor"
    READY_FOR_RETIREMENT = "Ready for Retirement"
    IMPLEMENTED = "Implemented"
    VERIFIED = "Verified"
    RETIRED = "Retired"


class IdPrefix(str, Enum):
    """Identifier prefixes handed out by the allocator."""

    CAPABILITY = "CAP-"
    ENABLER = "ENB-"
    FUNCTIONAL = "FR-"
    NON_FUNCTIONAL = "NFR-"


# Values assumed when a document leaves a field blank
DEFAULTS = {
    "status": EnablerStatus.IN_DRAFT.value,
    "approval": Approval.NOT_APPROVED.value,
    "priority": Priority.HIGH.value,
    "requirement_priority": RequirementPriority.MUST_HAVE.value,
    "requirement_status": RequirementStatus.IN_DRAFT.value,
}


@dataclass
class Requirement:
    """Functional or non-functional requirement row owned by an enabler."""

    id: str  # FR-123456 / NFR-123456
    name: str = ""
    requirement: str = ""
    priority: str = DEFAULTS["requirement_priority"]
    status: str = DEFAULTS["requirement_status"]
    approval: str = DEFAULTS["approval"]
    type: str | None = None  # Non-functional only

    def to_dict(self) -> dict:
        data = asdict(self)
        if data["type"] is None:
            del data["type"]
        return data


@dataclass
class Dependency:
    """Reference from one capability to another."""

    capability_id: str
    description: str = ""

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class EnablerRef:
    """Row a capability stores for one of its enablers."""

    id: str
    description: str = ""

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class EnablerSummary:
    """Live enabler fields joined into capability views at read time."""

    id: str
    name: str
    status: str
    approval: str
    priority: str


@dataclass
class Capability:
    """Top-level specification entity."""

    id: str  # CAP-123456
    name: str = ""
    status: str = CapabilityStatus.IN_DRAFT.value
    approval: str = DEFAULTS["approval"]
    priority: str = DEFAULTS["priority"]
    owner: str = ""
    system: str | None = None
    component: str | None = None
    purpose: str = ""
    enablers: list[EnablerRef] = field(default_factory=list)
    upstream_deps: list[Dependency] = field(default_factory=list)
    downstream_deps: list[Dependency] = field(default_factory=list)
    external_upstream: str = ""
    external_downstream: str = ""

    @property
    def doc_type(self) -> DocumentType:
        return DocumentType.CAPABILITY

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        data = asdict(self)
        data["type"] = self.doc_type.value
        return data


@dataclass
class Enabler:
    """Child specification entity owning requirements."""

    id: str  # ENB-123456
    name: str = ""
    description: str = ""
    status: str = DEFAULTS["status"]
    approval: str = DEFAULTS["approval"]
    priority: str = DEFAULTS["priority"]
    owner: str = ""
    capability_id: str | None = None
    functional_requirements: list[Requirement] = field(default_factory=list)
    non_functional_requirements: list[Requirement] = field(default_factory=list)

    @property
    def doc_type(self) -> DocumentType:
        return DocumentType.ENABLER

    def summary(self) -> EnablerSummary:
        return EnablerSummary(
            id=self.id,
            name=self.name or "Unnamed",
            status=self.status or "Unknown",
            approval=self.approval or "Unknown",
            priority=self.priority or "Unknown",
        )

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        data = asdict(self)
        data["type"] = self.doc_type.value
        data["functional_requirements"] = [
            r.to_dict() for r in self.functional_requirements
        ]
        data["non_functional_requirements"] = [
            r.to_dict() for r in self.non_functional_requirements
        ]
        return data
