"""
models.py

Shared data types for the form agent: field descriptors, completion outcomes,
navigation results, page structure and the execution report.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

# Field types
TEXT = 'text'
NUMBER = 'number'
DATE = 'date'
EMAIL = 'email'
TEL = 'tel'
URL = 'url'
PASSWORD = 'password'
SELECT = 'select'
RADIO = 'radio'
CHECKBOX = 'checkbox'
FILE = 'file'
TEXTAREA = 'textarea'

# Page kinds
PAGE_STEP = 'step'
PAGE_CONFIRMATION = 'confirmation'
PAGE_DRAFT_LIST = 'draft_list'

# Modal choices
MODAL_NONE = 'none'
MODAL_MISSING_FIELDS = 'missingFields'
MODAL_ALL_SATISFIED = 'allSatisfied'

# Submit results
SUBMIT_SUCCESS = 'success'
SUBMIT_VALIDATION_ERROR = 'validation_error'
SUBMIT_NONE = 'none'

# Navigation modes
PROBE = 'probe'
FORCE = 'force'


@dataclass
class FieldOption:
    value: str
    text: str
    selected: bool = False
    disabled: bool = False


@dataclass
class FieldConstraints:
    input_mask: str = ""
    datepicker: bool = False
    file_accept: str = ""
    max_size: str = ""
    multiple: bool = False


@dataclass
class FieldDescriptor:
    """Semantic description of one form control."""
    type: str
    label: str
    required: bool = False
    name: str = ""
    id: str = ""
    tag: str = "input"
    placeholder: str = ""
    code: str = ""  # data-codigo
    options: List[FieldOption] = field(default_factory=list)
    constraints: FieldConstraints = field(default_factory=FieldConstraints)
    control_id: str = ""
    control_type: str = ""
    attachment_id: str = ""
    conditional: bool = False

    @property
    def raw_identity(self) -> str:
        return self.name or self.id

    @property
    def identity_key(self) -> str:
        """Stable across re-extraction passes within one step."""
        return f"{self.label}_{self.type}_{self.raw_identity}"

    @property
    def context(self) -> str:
        """Lower-cased label + vendor code + placeholder, used for keyword matching."""
        return f"{self.label} {self.code} {self.placeholder}".lower()


@dataclass
class CompletionOutcome:
    label: str
    type: str
    assigned_value: str
    completed: bool
    required: bool = False
    failure_reason: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = {
            'label': self.label,
            'type': self.type,
            'assignedValue': self.assigned_value,
            'completed': self.completed,
            'required': self.required,
        }
        if self.failure_reason:
            data['failureReason'] = self.failure_reason
        return data


@dataclass(frozen=True)
class StepResult:
    number: int
    title: str
    fields_found: int
    fields_completed: int
    elapsed_seconds: int
    success: bool
    details: tuple = ()

    @classmethod
    def build(cls, number: int, title: str, details: List[CompletionOutcome],
              elapsed_seconds: int, forced_success: bool = False) -> 'StepResult':
        return cls(
            number=number,
            title=title,
            fields_found=len(details),
            fields_completed=sum(1 for d in details if d.completed),
            elapsed_seconds=elapsed_seconds,
            success=len(details) > 0 or forced_success,
            details=tuple(details),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'number': self.number,
            'title': self.title,
            'fieldsFound': self.fields_found,
            'fieldsCompleted': self.fields_completed,
            'elapsedSeconds': self.elapsed_seconds,
            'success': self.success,
            'details': [d.to_dict() for d in self.details],
        }


@dataclass
class ModalResult:
    appeared: bool = False
    choice: str = MODAL_NONE


@dataclass
class NavigationOutcome:
    advanced: bool = False
    modal: ModalResult = field(default_factory=ModalResult)

    @property
    def missing_fields(self) -> bool:
        return self.modal.choice == MODAL_MISSING_FIELDS


@dataclass
class ValidationErrors:
    detected: bool = False
    missing_fields: List[str] = field(default_factory=list)
    screenshot_path: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = {'detected': self.detected, 'missingFields': list(self.missing_fields)}
        if self.screenshot_path:
            data['screenshotPath'] = self.screenshot_path
        return data


@dataclass
class SubmitResult:
    kind: str = SUBMIT_NONE
    validation_errors: Optional[ValidationErrors] = None


@dataclass
class BudgetTab:
    title: str
    account: str


@dataclass
class PageStructure:
    total_steps: int = 1
    current_step: int = 1
    kind: str = PAGE_STEP
    step_titles: List[str] = field(default_factory=list)
    url: str = ""
    detection: str = 'fallback'
    confidence: int = 0
    is_budget_step: bool = False
    is_add_entry_step: bool = False
    budget_tabs: List[BudgetTab] = field(default_factory=list)
    required_ok: Optional[int] = None
    required_failed: Optional[int] = None

    @property
    def is_confirmation(self) -> bool:
        return self.kind == PAGE_CONFIRMATION

    @property
    def is_draft_list(self) -> bool:
        return self.kind == PAGE_DRAFT_LIST


@dataclass
class ExecutionStatistics:
    total_steps: int = 0
    total_fields: int = 0
    completed_fields: int = 0
    success_rate: int = 0
    fields_per_second: float = 0.0
    avg_seconds_per_step: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            'totalSteps': self.total_steps,
            'totalFields': self.total_fields,
            'completedFields': self.completed_fields,
            'successRate': self.success_rate,
            'fieldsPerSecond': self.fields_per_second,
            'avgSecondsPerStep': self.avg_seconds_per_step,
        }


@dataclass
class ExecutionReport:
    success: bool = False
    message: str = ""
    statistics: ExecutionStatistics = field(default_factory=ExecutionStatistics)
    title: str = ""
    project_title: str = "No disponible"
    project_code: str = "No disponible"
    initial_url: str = ""
    submitted_url: Optional[str] = None
    execution_date: str = field(default_factory=lambda: datetime.now().isoformat())
    total_time_seconds: int = 0
    steps: List[StepResult] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)
    validation_errors: Optional[ValidationErrors] = None

    def to_dict(self) -> Dict[str, Any]:
        data = {
            'success': self.success,
            'message': self.message,
            'statistics': self.statistics.to_dict(),
            'title': self.title,
            'projectTitle': self.project_title,
            'projectCode': self.project_code,
            'initialUrl': self.initial_url,
            'executionDate': self.execution_date,
            'totalTimeSeconds': self.total_time_seconds,
            'steps': [s.to_dict() for s in self.steps],
            'errors': list(self.errors),
        }
        if self.submitted_url:
            data['submittedUrl'] = self.submitted_url
        if self.validation_errors is not None:
            data['validationErrors'] = self.validation_errors.to_dict()
        return data
