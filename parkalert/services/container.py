from dataclasses import dataclass

from sqlalchemy.ext.asyncio import async_sessionmaker

from parkalert.core.settings import Settings
from parkalert.push import PushDispatcher
from parkalert.services.abuse import AbuseDetector
from parkalert.services.accounts import AccountService
from parkalert.services.ledger import ReputationLedger
from parkalert.services.registry import IdentifierRegistry
from parkalert.services.router import AlertRouter


@dataclass
class Services:
    accounts: AccountService
    ledger: ReputationLedger
    abuse: AbuseDetector
    registry: IdentifierRegistry
    router: AlertRouter


def build_services(sessions: async_sessionmaker, settings: Settings, push: PushDispatcher) -> Services:
    ledger = ReputationLedger(sessions, settings)
    abuse = AbuseDetector(settings, ledger)
    registry = IdentifierRegistry(sessions, settings, abuse)
    router = AlertRouter(sessions, settings, registry, ledger, abuse, push)
    return Services(
        accounts=AccountService(sessions, settings),
        ledger=ledger,
        abuse=abuse,
        registry=registry,
        router=router,
    )
