import time
from typing import List, Optional

import requests
from web3 import Web3

from config import Settings
from models import HealthCheck, ServiceStatus


def check_anvil(settings: Settings, details: List[str], timeout: float = 5) -> ServiceStatus:
    w3 = Web3(Web3.HTTPProvider(settings.rpc_url, request_kwargs={'timeout': timeout}))
    try:
        chain_id = w3.eth.chain_id
        block = w3.eth.block_number
    except Exception as e:
        details.append(f"Anvil unreachable at {settings.rpc_url}: {e}")
        return ServiceStatus.OFFLINE

    if chain_id != settings.chain_id:
        details.append(f"Anvil reports chain {chain_id}, expected {settings.chain_id}")
        return ServiceStatus.DEGRADED
    details.append(f"Anvil healthy at block {block}")
    return ServiceStatus.HEALTHY


def check_relay(settings: Settings, details: List[str], session: Optional[requests.Session] = None, timeout: float = 5) -> ServiceStatus:
    http = session or requests.Session()
    try:
        resp = http.get(f"{settings.relay_url}/info", timeout=timeout)
    except requests.RequestException as e:
        details.append(f"MEE node unreachable at {settings.relay_url}: {e}")
        return ServiceStatus.OFFLINE

    if not resp.ok:
        details.append(f"MEE node answered HTTP {resp.status_code}")
        return ServiceStatus.DEGRADED
    details.append(f"MEE node healthy at {settings.relay_url}")
    return ServiceStatus.HEALTHY


def check_health(settings: Settings, session: Optional[requests.Session] = None) -> HealthCheck:
    """Probe the Anvil fork and the MEE node without running the demo."""
    details: List[str] = []
    anvil = check_anvil(settings, details)
    relay = check_relay(settings, details, session=session)
    return HealthCheck(anvil=anvil, relay=relay, last_checked=time.time(), details=details)
