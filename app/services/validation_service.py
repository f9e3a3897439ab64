"""Score-entry checks for a single manually typed frame."""
from dataclasses import dataclass
from typing import Dict, Optional

MAX_BREAK = 147


@dataclass
class ValidationResult:
    is_valid: bool
    warning_message: Optional[str] = None

    def to_dict(self) -> Dict:
        data = {'isValid': self.is_valid}
        if self.warning_message:
            data['warningMessage'] = self.warning_message
        return data


class ValidationService:
    """Flags frame scores no snooker frame can produce.

    The 147 maximum break is the bound for a single player's frame score.
    The check is advisory: callers decide whether to refuse the save.
    """

    def __init__(self, max_score: int = MAX_BREAK) -> None:
        self._max_score = max_score

    def verify_score_entry(self, player1_score: int, player2_score: int) -> ValidationResult:
        for label, score in (('Player 1', player1_score), ('Player 2', player2_score)):
            if isinstance(score, bool) or not isinstance(score, int):
                return ValidationResult(False, f"{label} score must be a whole number.")
            if score < 0:
                return ValidationResult(False, f"{label} score cannot be negative.")
            if score > self._max_score:
                return ValidationResult(
                    False,
                    f"{label} score of {score} exceeds the maximum possible break of "
                    f"{self._max_score}.",
                )
        return ValidationResult(True)
