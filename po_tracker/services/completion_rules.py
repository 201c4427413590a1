"""
Step catalog and completion rule engine.

Every PO folder walks the same nine steps.  Each step is completed by one of
four rule kinds:

    FILE_PRESENCE            — at least one file attached      (steps 1, 2, 3, 4, 7)
    TRIPLE_CHECKBOX          — masterlist ∧ sharepoint ∧ notion (steps 5, 8)
    SINGLE_CHECKBOX_OUTLOOK  — outlook_done                     (step 6)
    SINGLE_CHECKBOX_PAID     — paid_done                        (step 9)

``evaluate`` is the only place that knows how a kind turns into a done state.
Read paths (detail, tree) and write paths (step_service) both go through
``STEP_CATALOG`` so the step → kind mapping exists exactly once.

Usage:
    from po_tracker.services.completion_rules import RuleKind, evaluate, get_step_definition

    evaluate(RuleKind.TRIPLE_CHECKBOX, {"masterlist_done": True}, 0)   # False
    get_step_definition(9).kind                                         # RuleKind.SINGLE_CHECKBOX_PAID
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Callable, Mapping


class RuleKind(str, enum.Enum):
    FILE_PRESENCE = "FILE_PRESENCE"
    TRIPLE_CHECKBOX = "TRIPLE_CHECKBOX"
    SINGLE_CHECKBOX_OUTLOOK = "SINGLE_CHECKBOX_OUTLOOK"
    SINGLE_CHECKBOX_PAID = "SINGLE_CHECKBOX_PAID"


TRIPLE_FLAGS = ("masterlist_done", "sharepoint_done", "notion_done")

# Flags a caller may set for each kind; anything else in a payload is ignored.
RULE_FLAGS: dict[RuleKind, tuple[str, ...]] = {
    RuleKind.FILE_PRESENCE: (),
    RuleKind.TRIPLE_CHECKBOX: TRIPLE_FLAGS,
    RuleKind.SINGLE_CHECKBOX_OUTLOOK: ("outlook_done",),
    RuleKind.SINGLE_CHECKBOX_PAID: ("paid_done",),
}

ALL_FLAGS = TRIPLE_FLAGS + ("outlook_done", "paid_done")


@dataclass(frozen=True)
class StepDefinition:
    step_no: int
    title: str
    description: str
    kind: RuleKind
    accepts_files: bool = True

    @property
    def flag_names(self) -> tuple[str, ...]:
        return RULE_FLAGS.get(self.kind, ())

    def to_dict(self) -> dict:
        return {
            "step_no": self.step_no,
            "step_title": self.title,
            "step_desc": self.description,
            "rule_kind": self.kind.value,
            "accepts_files": self.accepts_files,
            "flag_names": list(self.flag_names),
        }


STEP_CATALOG: tuple[StepDefinition, ...] = (
    StepDefinition(
        1, "Quotation",
        "Collect vendor quotation(s) and upload them.",
        RuleKind.FILE_PRESENCE,
    ),
    StepDefinition(
        2, "CAPEX/OPEX Form",
        "Fill in the CAPEX/OPEX request form from the template and upload it.",
        RuleKind.FILE_PRESENCE,
    ),
    StepDefinition(
        3, "Combined Document",
        "Combine the form and quotations into one document for signing.",
        RuleKind.FILE_PRESENCE,
    ),
    StepDefinition(
        4, "Signed Document",
        "Upload the signed combined document.",
        RuleKind.FILE_PRESENCE,
    ),
    StepDefinition(
        5, "Record Signed Form",
        "Update the Master List, upload to SharePoint and update the Notion status.",
        RuleKind.TRIPLE_CHECKBOX,
        accepts_files=False,
    ),
    StepDefinition(
        6, "Send PO to Manager",
        "Send the PO to the manager on Outlook.",
        RuleKind.SINGLE_CHECKBOX_OUTLOOK,
        accepts_files=False,
    ),
    StepDefinition(
        7, "Invoice",
        "Upload the vendor invoice.",
        RuleKind.FILE_PRESENCE,
    ),
    StepDefinition(
        8, "Record Invoice",
        "Update the Master List, upload the invoice to SharePoint and update the Notion status.",
        RuleKind.TRIPLE_CHECKBOX,
        accepts_files=False,
    ),
    StepDefinition(
        9, "Payment",
        "Confirm that the payment has been made.",
        RuleKind.SINGLE_CHECKBOX_PAID,
        accepts_files=False,
    ),
)

_BY_STEP_NO = {d.step_no: d for d in STEP_CATALOG}


def get_step_definition(step_no: int) -> StepDefinition | None:
    return _BY_STEP_NO.get(step_no)


# ── Evaluators: one pure function per kind ──────────────────────────────────

def _file_presence(flags: Mapping[str, bool], file_count: int) -> bool:
    return file_count >= 1


def _triple_checkbox(flags: Mapping[str, bool], file_count: int) -> bool:
    return all(bool(flags.get(name)) for name in TRIPLE_FLAGS)


def _outlook(flags: Mapping[str, bool], file_count: int) -> bool:
    return bool(flags.get("outlook_done"))


def _paid(flags: Mapping[str, bool], file_count: int) -> bool:
    return bool(flags.get("paid_done"))


_EVALUATORS: dict[RuleKind, Callable[[Mapping[str, bool], int], bool]] = {
    RuleKind.FILE_PRESENCE: _file_presence,
    RuleKind.TRIPLE_CHECKBOX: _triple_checkbox,
    RuleKind.SINGLE_CHECKBOX_OUTLOOK: _outlook,
    RuleKind.SINGLE_CHECKBOX_PAID: _paid,
}


def evaluate(kind, flags: Mapping[str, bool] | None, file_count: int) -> bool:
    """Return the done state for a step of *kind*.

    Pure and total: an unknown kind (or a kind string that is not a
    ``RuleKind`` value) evaluates to False instead of raising.
    """
    try:
        kind = RuleKind(kind)
    except ValueError:
        return False
    return _EVALUATORS[kind](flags or {}, int(file_count or 0))


def evaluate_step(step_no: int, flags: Mapping[str, bool] | None, file_count: int) -> bool:
    """Evaluate using the catalog kind of *step_no*; steps outside 1..9 are never done."""
    definition = get_step_definition(step_no)
    if definition is None:
        return False
    return evaluate(definition.kind, flags, file_count)
