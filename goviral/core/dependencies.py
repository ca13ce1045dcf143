from fastapi import Depends, Request

from .container import ApplicationContainer


def get_container(request: Request) -> ApplicationContainer:
    container = getattr(request.app.state, "container", None)
    if not container:
        raise RuntimeError("Application container not initialised.")
    return container


def get_settings(container: ApplicationContainer = Depends(get_container)):
    return container.settings


def get_auth_service(container: ApplicationContainer = Depends(get_container)):
    return container.auth_service


def get_plan_catalog(container: ApplicationContainer = Depends(get_container)):
    return container.plan_catalog


def get_trial_service(container: ApplicationContainer = Depends(get_container)):
    return container.trial_service


def get_upgrade_service(container: ApplicationContainer = Depends(get_container)):
    return container.upgrade_service


def get_verification_service(container: ApplicationContainer = Depends(get_container)):
    return container.verification_service


def get_webhook_service(container: ApplicationContainer = Depends(get_container)):
    return container.webhook_service


def get_subscription_service(container: ApplicationContainer = Depends(get_container)):
    return container.subscription_service
