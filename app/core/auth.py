import os
import time
from typing import Optional, Dict, Any

import requests
from fastapi import Header, HTTPException
from jose import jwt, JWTError
from jose.utils import base64url_decode
from loguru import logger

from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.backends import default_backend


# ------------------------------------------------------------
# Configuration
# ------------------------------------------------------------
# "header": trust X-User-Id (an upstream gateway already authenticated the caller)
# "hs256":  bearer JWT signed with AUTH_JWT_SECRET
# "jwks":   bearer ES256 JWT verified against AUTH_JWKS_URL
AUTH_VERIFY_MODE = os.getenv("AUTH_VERIFY_MODE", "header").lower()
AUTH_DEBUG = os.getenv("AUTH_DEBUG", "false").lower() in ("1", "true", "yes")

_JWKS_CACHE: Dict[str, Any] = {"ts": 0, "jwks": None}
_JWKS_TTL_SECONDS = int(os.getenv("JWKS_TTL_SECONDS", "600"))


# ------------------------------------------------------------
# Helpers
# ------------------------------------------------------------
def _get_bearer_token(authorization: Optional[str]) -> str:
    if not authorization:
        raise HTTPException(status_code=401, detail="Missing Authorization header")

    parts = authorization.split(" ", 1)
    if len(parts) != 2 or parts[0].lower() != "bearer":
        raise HTTPException(status_code=401, detail="Invalid Authorization header format")

    token = parts[1].strip()
    if not token:
        raise HTTPException(status_code=401, detail="Missing bearer token")

    return token


# ------------------------------------------------------------
# JWKS Fetch + Cache
# ------------------------------------------------------------
def _fetch_jwks() -> Dict[str, Any]:
    url = os.getenv("AUTH_JWKS_URL")
    if not url:
        raise HTTPException(status_code=500, detail="AUTH_JWKS_URL not set (required for JWKS mode)")

    headers = {}
    api_key = os.getenv("AUTH_JWKS_API_KEY")
    if api_key:
        headers["apikey"] = api_key

    try:
        resp = requests.get(url, headers=headers, timeout=10)
        data = resp.json()
    except (requests.RequestException, ValueError) as exc:
        logger.error(f"[auth] JWKS fetch failed: {exc}")
        raise HTTPException(status_code=500, detail="Unable to fetch JWKS")

    if resp.status_code != 200 or "keys" not in data:
        raise HTTPException(status_code=500, detail=f"Invalid JWKS response: HTTP {resp.status_code}")

    return data


def _get_cached_jwks() -> Dict[str, Any]:
    now = time.time()

    if _JWKS_CACHE["jwks"] and now - _JWKS_CACHE["ts"] < _JWKS_TTL_SECONDS:
        return _JWKS_CACHE["jwks"]

    jwks = _fetch_jwks()
    _JWKS_CACHE["jwks"] = jwks
    _JWKS_CACHE["ts"] = now

    return jwks


def _find_key(kid: str) -> Optional[Dict[str, Any]]:
    jwks = _get_cached_jwks()
    key_data = next((k for k in jwks["keys"] if k.get("kid") == kid), None)

    if not key_data:
        # key rotation: refresh once
        _JWKS_CACHE["jwks"] = None
        jwks = _get_cached_jwks()
        key_data = next((k for k in jwks["keys"] if k.get("kid") == kid), None)

    return key_data


def _public_key_from_jwk(jwk: Dict[str, Any]):
    x = base64url_decode(jwk["x"].encode())
    y = base64url_decode(jwk["y"].encode())

    public_numbers = ec.EllipticCurvePublicNumbers(
        int.from_bytes(x, "big"),
        int.from_bytes(y, "big"),
        ec.SECP256R1(),
    )

    return public_numbers.public_key(default_backend())


# ------------------------------------------------------------
# Verification Modes
# ------------------------------------------------------------
def _verify_jwt_hs256(token: str) -> Dict[str, Any]:
    secret = os.getenv("AUTH_JWT_SECRET")
    if not secret:
        raise HTTPException(status_code=500, detail="AUTH_JWT_SECRET not set")

    try:
        return jwt.decode(token, secret, algorithms=["HS256"], options={"verify_aud": False})
    except JWTError:
        raise HTTPException(status_code=401, detail="Invalid or expired token")


def _verify_jwt_jwks(token: str) -> Dict[str, Any]:
    try:
        header = jwt.get_unverified_header(token)
    except JWTError:
        raise HTTPException(status_code=401, detail="Invalid token header")

    alg = header.get("alg")
    kid = header.get("kid")

    if AUTH_DEBUG:
        logger.debug(f"[auth] header.alg={alg} header.kid={kid}")

    if not kid:
        raise HTTPException(status_code=401, detail="Token missing kid")

    if alg != "ES256":
        raise HTTPException(status_code=401, detail=f"Unsupported JWT alg: {alg}")

    key_data = _find_key(kid)
    if not key_data:
        raise HTTPException(status_code=401, detail="Public key not found for kid")

    try:
        return jwt.decode(
            token,
            _public_key_from_jwk(key_data),
            algorithms=["ES256"],
            options={"verify_aud": False},
        )
    except JWTError:
        raise HTTPException(status_code=401, detail="Invalid or expired token")


# ------------------------------------------------------------
# Main Dependency
# ------------------------------------------------------------
def get_current_user_id(
    authorization: Optional[str] = Header(default=None),
    x_user_id: Optional[str] = Header(default=None),
) -> str:
    if AUTH_VERIFY_MODE == "header":
        if not x_user_id or not x_user_id.strip():
            raise HTTPException(status_code=401, detail="User authentication required")
        return x_user_id.strip()

    token = _get_bearer_token(authorization)

    if AUTH_DEBUG:
        logger.debug(f"[auth] mode={AUTH_VERIFY_MODE} token_len={len(token)}")

    if AUTH_VERIFY_MODE == "hs256":
        payload = _verify_jwt_hs256(token)
    elif AUTH_VERIFY_MODE == "jwks":
        payload = _verify_jwt_jwks(token)
    else:
        raise HTTPException(status_code=500, detail=f"Invalid AUTH_VERIFY_MODE: {AUTH_VERIFY_MODE}")

    sub = payload.get("sub")
    if not sub:
        raise HTTPException(status_code=401, detail="Token missing sub claim")

    if AUTH_DEBUG:
        logger.debug(f"[auth] user_id={sub}")

    return str(sub)
