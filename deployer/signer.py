from __future__ import annotations

import re
from typing import Optional

import sr25519
from bip39 import bip39_to_mini_secret
from eth_utils import decode_hex, is_hex
from substrateinterface import Keypair, KeypairType
from substrateinterface.key import extract_derive_path

from deployer import config
from deployer.errors import DeployError, ErrorKind

# Well-known development mnemonic behind //Alice, //Bob, ...
DEV_PHRASE = "bottom drive obey lake curtain smoke basket hold race lonely fit walk"

# <phrase or 0xseed>(//hard|/soft)*(///password)?
_SURI = re.compile(r"^(?P<phrase>[^/]*)(?P<path>(//?[^/]+)*)(///(?P<password>.*))?$")


def redact_suri(suri: str) -> str:
    """Keep only the derivation path, for log lines."""
    m = _SURI.match(str(suri or "").strip())
    if not m:
        return "<invalid suri>"
    phrase = "<secret>" if m.group("phrase") else ""
    password = "///<password>" if m.group("password") is not None else ""
    return f"{phrase}{m.group('path') or ''}{password}"


def _derive(keypair: Keypair, path: str, ss58_format: int) -> Keypair:
    public_key, private_key = keypair.public_key, keypair.private_key
    for junction in extract_derive_path(path):
        derive = sr25519.hard_derive_keypair if junction.is_hard else sr25519.derive_keypair
        _, public_key, private_key = derive((junction.chain_code, public_key, private_key), b"")
    derived = Keypair(
        public_key=public_key,
        private_key=private_key,
        ss58_format=ss58_format,
        crypto_type=KeypairType.SR25519,
    )
    derived.derive_path = path
    return derived


def _keypair_from_suri(text: str, ss58_format: int) -> Keypair:
    m = _SURI.match(text)
    phrase = (m.group("phrase") or "").strip() or DEV_PHRASE
    path = m.group("path") or ""
    password = m.group("password")

    if phrase.startswith("0x"):
        # raw 32-byte mini secret; a password has no meaning here
        base = Keypair.create_from_seed(seed_hex=phrase, ss58_format=ss58_format, crypto_type=KeypairType.SR25519)
    elif password is None:
        return Keypair.create_from_uri(text, ss58_format=ss58_format, crypto_type=KeypairType.SR25519)
    else:
        mini_secret = bytes(bip39_to_mini_secret(phrase, password, "en"))
        base = Keypair.create_from_seed(
            seed_hex="0x" + mini_secret.hex(),
            ss58_format=ss58_format,
            crypto_type=KeypairType.SR25519,
        )
    return _derive(base, path, ss58_format) if path else base


def create_signer(suri: str, ss58_format: int = config.DEFAULT_SS58_FORMAT) -> Keypair:
    """Build an sr25519 keypair from a secret URI.

    Accepts dev accounts ('//Alice'), mnemonics or 0x seeds with hard/soft
    derivation junctions, and an optional '///password' suffix.
    """
    text = str(suri or "").strip()
    if not text:
        raise DeployError(ErrorKind.INVALID_SIGNING_KEY, "empty secret URI")
    if not _SURI.match(text):
        raise DeployError(ErrorKind.INVALID_SIGNING_KEY, f"malformed secret URI {redact_suri(text)}")
    try:
        return _keypair_from_suri(text, int(ss58_format))
    except Exception as exc:
        # the library's message may echo the phrase back, keep it out of the error text
        raise DeployError(
            ErrorKind.INVALID_SIGNING_KEY,
            f"cannot derive a key from {redact_suri(text)}: {type(exc).__name__}",
        ) from exc


def parse_hex_bytes(value: Optional[str]) -> Optional[bytes]:
    """Parse a hex salt ('0xdead' or 'dead'); None and '' mean no salt."""
    if value is None:
        return None
    raw = str(value).strip()
    if not raw:
        return None
    if not raw.startswith(("0x", "0X")):
        raw = "0x" + raw
    if not is_hex(raw) or len(raw) % 2:
        raise DeployError(ErrorKind.INVALID_ARGUMENTS, f"salt is not valid hex: {value!r}")
    return decode_hex(raw)
