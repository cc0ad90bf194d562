import time, jwt
from typing import Dict, Optional
from common.settings import Settings, settings as default_settings

ALGO = "HS256"
ADMIN_AUDIENCE = "ledger-admin"

def mint_user_jwt(sub: str, claims: Optional[Dict] = None, cfg: Settings = default_settings) -> str:
    now = int(time.time())
    payload = {
        "iss": cfg.jwt_issuer,
        "sub": sub,
        "iat": now,
        "exp": now + cfg.jwt_ttl_seconds,
        **(claims or {}),
    }
    return jwt.encode(payload, cfg.jwt_secret, algorithm=ALGO)

def mint_internal_jwt(aud: str = ADMIN_AUDIENCE, claims: Optional[Dict] = None, cfg: Settings = default_settings) -> str:
    now = int(time.time())
    payload = {
        "iss": cfg.jwt_issuer,
        "aud": aud,
        "iat": now,
        "exp": now + cfg.internal_jwt_ttl_seconds,
        **(claims or {}),
    }
    return jwt.encode(payload, cfg.jwt_secret, algorithm=ALGO)

def verify_token(token: str, audience: Optional[str] = None, cfg: Settings = default_settings) -> Dict:
    required = ["exp", "iat", "iss"] if audience else ["exp", "iat", "iss", "sub"]
    return jwt.decode(
        token,
        cfg.jwt_secret,
        algorithms=[ALGO],
        audience=audience,
        options={"require": required},
        issuer=cfg.jwt_issuer,
    )
