from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Optional

from ..util.errors import CredentialsError

DEFAULT_CREDENTIALS_PATH = Path("~/.hetzner.rc")

ENV_LOGIN = "HETZNER_INV_LOGIN"
ENV_PASSWORD = "HETZNER_INV_PASSWORD"


@dataclass(frozen=True)
class Credentials:
    """Robot webservice user. The password is excluded from repr."""

    login: str
    password: str
    source: str

    def __repr__(self) -> str:
        return f"Credentials(login={self.login!r}, source={self.source!r})"


def unquote(value: str) -> str:
    """Strip one pair of matching single or double quotes."""
    if len(value) > 1 and value[0] in "'\"" and value[-1] == value[0]:
        return value[1:-1]
    return value


def parse_properties(text: str) -> Dict[str, str]:
    """
    Parse a simple properties file: key=value or key: value per line,
    '#' and '!' start comments. Later keys win.
    """
    props: Dict[str, str] = {}
    for line in text.splitlines():
        stripped = line.strip()
        if not stripped or stripped[0] in "#!":
            continue
        positions = [i for i in (stripped.find("="), stripped.find(":")) if i >= 0]
        if not positions:
            props[stripped] = ""
            continue
        sep = min(positions)
        props[stripped[:sep].strip()] = stripped[sep + 1 :].strip()
    return props


def _env(name: str) -> Optional[str]:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return None
    return raw.strip()


def load_credentials(path: Optional[Path] = None) -> Credentials:
    """
    Resolve Robot credentials.
    - HETZNER_INV_LOGIN / HETZNER_INV_PASSWORD when both are set
    - otherwise login/password keys from the properties file (default ~/.hetzner.rc)
    """
    env_login, env_password = _env(ENV_LOGIN), _env(ENV_PASSWORD)
    if env_login and env_password:
        return Credentials(login=env_login, password=env_password, source="env")

    cred_path = (path or DEFAULT_CREDENTIALS_PATH).expanduser()
    try:
        text = cred_path.read_text(encoding="utf-8")
    except OSError as e:
        raise CredentialsError(f"no credentials: {cred_path}: {e.strerror or e}") from e

    props = parse_properties(text)
    login = unquote(props.get("login", ""))
    password = unquote(props.get("password", ""))
    if not login or not password:
        raise CredentialsError(f"no credentials: {cred_path} must define login and password")
    return Credentials(login=login, password=password, source=str(cred_path))
