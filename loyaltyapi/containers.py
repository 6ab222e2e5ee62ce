from dependency_injector import containers, providers

from loyaltyapi.config import Settings
from loyaltyapi.database.session import get_db
from loyaltyapi.services.audit_service import AuditService
from loyaltyapi.services.ledger_service import LedgerService
from loyaltyapi.services.repair_service import RepairService


class ConfigModule(containers.DeclarativeContainer):
    """Application configuration."""

    config = providers.Singleton(Settings)


class RepositoryModule(containers.DeclarativeContainer):
    """Database session (one session per container lifetime)."""

    get_db = providers.Resource(get_db)


class ServiceModule(containers.DeclarativeContainer):
    """Service layer dependencies."""

    config = providers.DependenciesContainer()
    repositories = providers.DependenciesContainer()

    ledger_service = providers.Factory(LedgerService, db=repositories.get_db, settings=config.config)
    audit_service = providers.Factory(AuditService, db=repositories.get_db, settings=config.config)
    repair_service = providers.Factory(RepairService, db=repositories.get_db, settings=config.config)


class Container(containers.DeclarativeContainer):
    """Container for batch jobs (maintenance scripts) outside the request cycle."""

    config = providers.Container(ConfigModule)
    repositories = providers.Container(RepositoryModule)
    services = providers.Container(
        ServiceModule, config=config, repositories=repositories
    )
