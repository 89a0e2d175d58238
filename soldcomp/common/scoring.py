"""Config-driven weighted scoring utilities."""

from __future__ import annotations


def clamp(value: float, *, minimum: float, maximum: float) -> float:
    return max(minimum, min(maximum, value))


def apply_weighting_profile(profile: dict, component_scores: dict[str, float | None]) -> tuple[int, dict]:
    """Combine 0-100 component scores using the weights of a ranking profile.

    Components scored as None (missing data) contribute nothing, matching the
    behaviour of a zero score, but are listed separately in the explanation.
    """
    raw_score = 0.0
    applied: dict[str, float] = {}
    missing: list[str] = []

    for name, weight in profile.get("weights", {}).items():
        score = component_scores.get(name)
        if score is None:
            missing.append(name)
            continue
        contribution = float(score) * float(weight)
        applied[name] = round(contribution, 2)
        raw_score += contribution

    clamp_cfg = profile.get("clamp", {"min": 0, "max": 100})
    clamped_score = int(round(clamp(raw_score, minimum=clamp_cfg["min"], maximum=clamp_cfg["max"])))

    explanation = {
        "applied_components": applied,
        "missing_components": missing,
        "raw_score": round(raw_score, 2),
        "clamped_score": clamped_score,
    }
    return clamped_score, explanation
