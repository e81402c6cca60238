"""
Naming service: round names and registration code normalization

Pure computation, no state transitions
"""
from typing import Optional

FINAL_ROUND_NAME = "Final"


def default_round_name(sequence: int) -> str:
    """
    Default display name for a round

    Examples:
        default_round_name(1) -> "Round 1"
        default_round_name(3) -> "Round 3"
    """
    return f"Round {sequence}"


def next_round_name(sequence: int, requested: Optional[str], is_final: bool) -> str:
    """
    Name for a round appended by advance_round

    Rules:
    - an explicit non-blank name always wins
    - otherwise "Final" for a final round, "Round N" for any other

    Args:
        sequence: sequence number of the new round (1-based)
        requested: name supplied by the operator, may be None or blank
        is_final: whether the new round is the final
    """
    if requested and requested.strip():
        return requested.strip()
    if is_final:
        return FINAL_ROUND_NAME
    return default_round_name(sequence)


def normalize_registration_code(code: Optional[str]) -> str:
    """
    Registration codes are compared upper-cased with surrounding blanks removed

    Examples:
        " 21cs045 " -> "21CS045"
        None -> ""
    """
    return str(code or "").strip().upper()


def normalize_department_code(code: Optional[str]) -> str:
    return str(code or "").strip().upper()
