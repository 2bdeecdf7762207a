"""
Compliance Reading Engine - Pass/Fail Evaluator
Version: 1.1.0

Changelog:
v1.1.0 (2026-10-12): Verdicts are always recomputed from the current field
                      definition; nothing here reads a stored verdict
v1.0.0 (2026-10-05): Initial evaluator

Classifies a captured value against its FieldDefinition:
- empty (None / blank string)  -> NA
- pass_fail: True/'pass' -> PASS, False/'fail' -> FAIL, else NA
- number: unparseable -> NA; outside [pass_threshold, fail_threshold] -> FAIL;
  on either bound or inside -> PASS; a missing bound is not checked
- text, boolean, select: presence only -> PASS
"""

import math
import logging
from typing import Any, Dict, Iterable, Optional

from models.forms import FieldDefinition, FieldType
from models.submission import Aggregate, OverallResult, Verdict

logger = logging.getLogger(__name__)


def is_blank(value: Any) -> bool:
    """True for None and empty/whitespace strings"""
    if value is None:
        return True
    return isinstance(value, str) and value.strip() == ""


def parse_number(value: Any) -> Optional[float]:
    """Parse an operator-entered number; None when it is not a finite number"""
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            return None
    else:
        return None
    if math.isnan(number) or math.isinf(number):
        return None
    return number


class PassFailEvaluator:
    """Pure classification of values against field type and thresholds."""

    def classify(self, field: FieldDefinition, value: Any) -> Verdict:
        """
        Classify one value.

        Args:
            field: Current definition of the field (thresholds as of now)
            value: Raw captured value

        Returns:
            Verdict.PASS, Verdict.FAIL or Verdict.NA
        """
        if is_blank(value):
            return Verdict.NA

        evaluator = getattr(self, f"_eval_{field.type.value}", None)
        if not evaluator:
            logger.warning(f"Unknown field type: {field.type}")
            return Verdict.NA
        return evaluator(field, value)

    def _eval_pass_fail(self, field: FieldDefinition, value: Any) -> Verdict:
        if value is True:
            return Verdict.PASS
        if value is False:
            return Verdict.FAIL
        if isinstance(value, str):
            token = value.strip().lower()
            if token == "pass":
                return Verdict.PASS
            if token == "fail":
                return Verdict.FAIL
        return Verdict.NA

    def _eval_number(self, field: FieldDefinition, value: Any) -> Verdict:
        number = parse_number(value)
        if number is None:
            return Verdict.NA
        # fail_threshold is the upper limit, pass_threshold the lower limit
        if field.fail_threshold is not None and number > field.fail_threshold:
            return Verdict.FAIL
        if field.pass_threshold is not None and number < field.pass_threshold:
            return Verdict.FAIL
        return Verdict.PASS

    def _eval_text(self, field: FieldDefinition, value: Any) -> Verdict:
        return Verdict.PASS

    _eval_boolean = _eval_text
    _eval_select = _eval_text

    def classify_answers(self, fields: Iterable[FieldDefinition],
                         answers: Dict[str, Any]) -> Dict[str, Verdict]:
        """Verdict per field id for an instance's answers map"""
        return {f.id: self.classify(f, answers.get(f.id)) for f in fields}

    def aggregate(self, verdicts: Iterable[Verdict]) -> Aggregate:
        """Roll verdicts up: any FAIL -> FAIL, else any PASS -> PASS, else INCOMPLETE"""
        counts = {Verdict.PASS: 0, Verdict.FAIL: 0, Verdict.NA: 0}
        for verdict in verdicts:
            counts[verdict] += 1

        if counts[Verdict.FAIL] > 0:
            overall = OverallResult.FAIL
        elif counts[Verdict.PASS] > 0:
            overall = OverallResult.PASS
        else:
            overall = OverallResult.INCOMPLETE

        return Aggregate(
            pass_count=counts[Verdict.PASS],
            fail_count=counts[Verdict.FAIL],
            na_count=counts[Verdict.NA],
            overall_result=overall,
        )


# Singleton
_evaluator = PassFailEvaluator()


def classify(field: FieldDefinition, value: Any) -> Verdict:
    return _evaluator.classify(field, value)


def classify_answers(fields: Iterable[FieldDefinition],
                     answers: Dict[str, Any]) -> Dict[str, Verdict]:
    return _evaluator.classify_answers(fields, answers)


def aggregate(verdicts: Iterable[Verdict]) -> Aggregate:
    return _evaluator.aggregate(verdicts)
