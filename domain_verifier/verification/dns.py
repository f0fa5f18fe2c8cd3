#domain_verifier\verification\dns.py
"""TXT verification record extraction and tenant-facing DNS instructions."""

from dataclasses import dataclass
from typing import Any, Dict, List, Optional


DEFAULT_TXT_TTL = 300


@dataclass(frozen=True)
class VerificationInfo:
    txt: Optional[str] = None
    record: Optional[str] = None
    host: Optional[str] = None
    type: Optional[str] = None


@dataclass(frozen=True)
class DnsInstructions:
    name: str
    value: str
    instructions: str
    type: str = "TXT"
    ttl: int = DEFAULT_TXT_TTL


def extract_verification_info(verification: Optional[List[Dict[str, Any]]]) -> VerificationInfo:
    """Pick the TXT challenge out of the authority's verification list."""
    for entry in verification or []:
        if entry.get("type") == "TXT":
            return VerificationInfo(
                txt=entry.get("value"),
                record=f'{entry.get("domain")} TXT "{entry.get("value")}"',
                host=entry.get("domain"),
                type="TXT",
            )
    return VerificationInfo()


def is_apex_domain(hostname: str) -> bool:
    return len(hostname.strip(".").split(".")) <= 2


def generate_dns_instructions(
    hostname: str,
    info: VerificationInfo,
) -> Optional[DnsInstructions]:
    if not info.txt or not info.host:
        return None

    if is_apex_domain(hostname):
        note = 'Note: For apex domains, you may need to add this as "@" or the root domain.'
    else:
        note = "Note: This is for subdomain verification."

    text = (
        "Add this TXT record to your DNS provider:\n\n"
        f"Name: {info.host}\n"
        "Type: TXT\n"
        f'Value: "{info.txt}"\n'
        f"TTL: {DEFAULT_TXT_TTL} (or default)\n\n"
        f"{note}"
    )
    return DnsInstructions(name=info.host, value=info.txt, instructions=text)
