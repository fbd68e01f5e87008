from __future__ import annotations

class AuditError(Exception):
    """Base pour les erreurs du noyau d'audit (jamais fatales pour le processus)."""

# ---------------- Absences (résultat négatif normal) ----------------
class NotFound(AuditError):
    """Cas, étape, session ou dimension absent."""

class CaseNotFound(NotFound):
    def __init__(self, case_name: str) -> None:
        super().__init__(f"Cas de test introuvable: {case_name}")
        self.case_name = case_name

class StepNotFound(NotFound):
    def __init__(self, case_name: str, step_index: int) -> None:
        super().__init__(f"Étape {step_index} introuvable dans le cas {case_name}")
        self.case_name = case_name
        self.step_index = step_index

class SessionNotFound(NotFound):
    def __init__(self, session_id: str) -> None:
        super().__init__(f"Session '{session_id}' introuvable (inconnue, expirée ou déjà consommée)")
        self.session_id = session_id

class DimensionNotFound(NotFound):
    def __init__(self, dimension_id: str, available: list[str] | None = None) -> None:
        msg = f"Dimension '{dimension_id}' introuvable"
        if available:
            msg += f" (disponibles: {', '.join(available)})"
        super().__init__(msg)
        self.dimension_id = dimension_id

# ---------------- Machine à états ----------------
class InvalidToken(AuditError):
    """Jeton absent, périmé ou falsifié : redemander l'état courant."""

class AlreadyComplete(AuditError):
    def __init__(self, case_name: str, step_index: int) -> None:
        super().__init__(f"L'étape {step_index} du cas {case_name} est déjà entièrement évaluée")
        self.case_name = case_name
        self.step_index = step_index

class AlreadyScored(AuditError):
    """Une dimension déjà notée ne peut pas être réécrite."""

class ScoreOutOfRange(AuditError, ValueError):
    pass

class InvalidStepError(AuditError, ValueError):
    pass

class IncompleteSubmission(AuditError, ValueError):
    """evaluationToken, score et reason vont ensemble (tous ou aucun)."""

# ---------------- Sessions ----------------
class MissingScores(AuditError):
    def __init__(self, missing_ids: list[str], expected_ids: list[str]) -> None:
        super().__init__(f"Scores manquants pour: {', '.join(missing_ids)}")
        self.missing_ids = list(missing_ids)
        self.expected_ids = list(expected_ids)

# ---------------- Persistance ----------------
class CorruptRecord(AuditError):
    def __init__(self, key: str, detail: str = "") -> None:
        super().__init__(f"Enregistrement illisible: {key}" + (f" ({detail})" if detail else ""))
        self.key = key
