import logging

from dotenv import load_dotenv

from goviral.core.config import Settings
from goviral.core.logging import configure_logging
from goviral.infrastructure.persistence.sqlite import SQLitePersistence
from goviral.services.plan_catalog import PlanCatalog


def main() -> None:
    load_dotenv()
    configure_logging()

    settings = Settings()
    persistence = SQLitePersistence(settings.database_path)
    try:
        plans = PlanCatalog(persistence).seed_static_plans()
    finally:
        persistence.close()

    logging.getLogger(__name__).info("Seeded %d plans into %s", len(plans), settings.database_path)
    for plan in plans:
        print(f"{plan.name}: {plan.price} {plan.currency} ({plan.trial_days}-day trial)")


if __name__ == "__main__":
    main()
