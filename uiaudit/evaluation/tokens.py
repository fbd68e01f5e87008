from __future__ import annotations
from hashlib import sha256
import hmac, secrets

PREFIX = "tok_"

class TokenIssuer:
    """Jetons de capacité à usage unique.

    Le corps est aléatoire (module `secrets`), jamais dérivé du contenu. Avec un
    secret configuré, une signature HMAC lie en plus le jeton au triplet
    (cas, étape, génération) : `tok_<nonce>.<sig>`.
    """

    def __init__(self, *, secret: str = "", nbytes: int = 8) -> None:
        self.secret = secret or ""
        self.nbytes = max(4, int(nbytes))

    def _sig(self, case_name: str, step_index: int, generation: int, nonce: str) -> str:
        msg = f"{case_name}\x1f{step_index}\x1f{generation}\x1f{nonce}".encode("utf-8")
        return hmac.new(self.secret.encode("utf-8"), msg, sha256).hexdigest()[:16]

    def issue(self, case_name: str, step_index: int, generation: int) -> str:
        nonce = secrets.token_hex(self.nbytes)
        if not self.secret:
            return PREFIX + nonce
        return f"{PREFIX}{nonce}.{self._sig(case_name, step_index, generation, nonce)}"

    def is_bound(self, token: str, *, case_name: str, step_index: int, generation: int) -> bool:
        """Sans secret tout jeton est accepté ; sinon la signature doit correspondre au triplet."""
        if not self.secret:
            return True
        body = token[len(PREFIX):] if token.startswith(PREFIX) else token
        nonce, _, sig = body.partition(".")
        return bool(sig) and hmac.compare_digest(sig, self._sig(case_name, step_index, generation, nonce))

    def matches(self, stored: str | None, presented: str | None, *, case_name: str, step_index: int, generation: int) -> bool:
        """Vrai si `presented` est exactement le jeton stocké et lié à (cas, étape, génération)."""
        if not stored or not presented:
            return False
        if not hmac.compare_digest(stored.encode("utf-8"), presented.encode("utf-8")):
            return False
        return self.is_bound(presented, case_name=case_name, step_index=step_index, generation=generation)
