from __future__ import annotations
import hashlib
import ipaddress
from typing import List, Tuple
from fastapi import Request


def parse_cidrs(csv: str) -> List[ipaddress._BaseNetwork]:
    """
    Parse a comma-separated CIDR list into ipaddress network objects.
    """
    nets: List[ipaddress._BaseNetwork] = []
    for part in (csv or "").split(","):
        p = part.strip()
        if not p:
            continue
        try:
            nets.append(ipaddress.ip_network(p, strict=False))
        except ValueError:
            # ignore invalid cidr token
            pass
    return nets


def _is_trusted(ip: str, trusted: List[ipaddress._BaseNetwork]) -> bool:
    try:
        ipobj = ipaddress.ip_address(ip)
    except ValueError:
        return False
    return any(ipobj in net for net in trusted)


def hash_ip(ip: str, salt: str) -> str:
    return hashlib.sha256((salt + ip).encode("utf-8")).hexdigest()[:32]


def get_client_ip(request: Request, trusted_cidrs: str) -> str:
    """X-Forwarded-For is honoured only when the socket peer is a trusted proxy."""
    remote = request.client.host if request.client else ""
    xff = request.headers.get("x-forwarded-for")
    if xff and _is_trusted(remote, parse_cidrs(trusted_cidrs)):
        first = xff.split(",")[0].strip()
        try:
            ipaddress.ip_address(first)
            return first
        except ValueError:
            return remote
    return remote


def get_client_info(request: Request, *, trusted_cidrs: str, salt: str) -> Tuple[str, str]:
    ip = get_client_ip(request, trusted_cidrs)
    return ip, hash_ip(ip or "unknown", salt)
