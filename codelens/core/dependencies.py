from dotenv import load_dotenv
from fastapi import Request
from starlette.datastructures import State

from codelens.modules.code_provider.github.github_service import GithubService
from codelens.modules.intelligence.provider.provider_service import ProviderService
from codelens.modules.utils.logger import setup_logger

logger = setup_logger(__name__)


# Model gateway configuration


def init_provider_service() -> ProviderService:
    service = ProviderService.create()
    logger.info(
        f"using analysis model {service.llm_config.model} "
        f"(prompt limit {service.prompt_char_limit or 'disabled'})"
    )
    return service


def get_provider_service(request: Request) -> ProviderService:
    return request.app.state.provider_service


# GitHub client configuration


def init_github_service() -> GithubService:
    return GithubService()


def get_github_service(request: Request) -> GithubService:
    return request.app.state.github_service


# State initialization


def init_state(state: State):
    load_dotenv(override=True)
    state.provider_service = init_provider_service()
    state.github_service = init_github_service()
    return state


async def close_state(state: State):
    github_service = getattr(state, "github_service", None)
    if github_service is not None:
        await github_service.close()
