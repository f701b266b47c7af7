import logging
import os
from contextlib import asynccontextmanager
from typing import Dict, Optional

import requests
from fastapi import Depends, FastAPI, Request

from auth.azure_ad import UserContext, get_azure_ad_config_status, get_current_user
from auth.broker import TokenBroker
from auth.config import CredentialConfig, Settings
from auth.credentials import CredentialStrategy, build_credential_strategy
from auth.errors import ConfigurationError
from models.requests import ChatRequest, ChatResponse
from services.downstream_api import DownstreamApiInvoker
from services.secret_store import keyvault_status, kv

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

# ======================================================
# STARTUP WIRING
# ======================================================

def build_strategy(settings: Settings) -> CredentialStrategy:
    config = CredentialConfig.from_settings(settings, secret_lookup=kv)
    return build_credential_strategy(config)


def create_app(
    settings: Optional[Settings] = None,
    *,
    strategy: Optional[CredentialStrategy] = None,
    session: Optional[requests.Session] = None,
) -> FastAPI:
    """
    Build the app. Everything is constructed once at startup: a missing
    setting or an unusable identity provider configuration aborts startup
    instead of failing the first request.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        active = settings or Settings.from_env()
        active_strategy = strategy or build_strategy(active)

        broker = TokenBroker(
            active_strategy,
            api_app_id=active.api_app_id,
            oauth_scope=active.oauth_scope,
        )
        if not active.apim_base_url:
            raise ConfigurationError("APIM_BASE_URL is not configured")
        logger.info("Downstream scope: %s", broker.downstream_scope)
        active_strategy.client_factory.get_client()
        active_strategy.verify_trust()

        app.state.settings = active
        app.state.broker = broker
        app.state.invoker = DownstreamApiInvoker(broker, active.apim_base_url, session=session)
        logger.info(
            "Using %s for environment %s",
            type(active_strategy).__name__,
            active.environment,
        )
        yield

    app = FastAPI(title="OBO Token Broker", lifespan=lifespan)

    # ======================================================
    # ROUTES
    # ======================================================

    @app.get("/health")
    def health(request: Request) -> Dict[str, object]:
        broker: TokenBroker = request.app.state.broker
        return {
            "status": "ok",
            "credential_kind": broker.strategy.kind.value,
            "client_initialized": broker.strategy.client_factory.is_initialized,
        }

    @app.get("/auth-config")
    def auth_config(request: Request) -> Dict[str, object]:
        broker: TokenBroker = request.app.state.broker
        return {
            "azure_ad": get_azure_ad_config_status(request.app.state.settings),
            "credential": broker.strategy.config.status(),
            "keyvault": keyvault_status(),
        }

    @app.post("/chat", response_model=ChatResponse)
    def chat(
        body: ChatRequest,
        request: Request,
        user: UserContext = Depends(get_current_user),
    ) -> ChatResponse:
        logger.info("User message from %s", user.display_name or "unknown user")
        invoker: DownstreamApiInvoker = request.app.state.invoker
        result = invoker.call(body.message, user.assertion)
        return ChatResponse(response=result.text, ok=result.ok)

    return app


app = create_app()
