"""Scenario-based model selection.

Rules are evaluated in priority order for every request:

1. explicit ``"provider,model"``
2. long context (token count or sticky previous-turn usage)
3. subagent tag in the second system block
4. background (claude haiku models)
5. web search tools
6. thinking
7. default

A custom router hook may preempt all of them, and session or project
overrides replace the ``Router`` section before rules 2-7 run. Any failure
degrades to the global default model.
"""

from __future__ import annotations

import importlib.util
import inspect
import logging
import os
import re
from dataclasses import dataclass
from types import ModuleType
from typing import TYPE_CHECKING, Any

from ccrouter.core.constants import Constants
from ccrouter.routing.session import ProjectOverrides, SessionUsageCache, session_id_from_user_id

if TYPE_CHECKING:
    from ccrouter.core.config.service import ConfigService
    from ccrouter.core.provider.provider_registry import ProviderRegistry
    from ccrouter.tokenizer.service import TokenizerService

logger = logging.getLogger(__name__)

DEFAULT_LONG_CONTEXT_THRESHOLD = 60000
STICKY_LONG_CONTEXT_MIN_TOKENS = 20000

SUBAGENT_PATTERN = re.compile(
    re.escape(Constants.SUBAGENT_TAG_OPEN) + r"(.*?)" + re.escape(Constants.SUBAGENT_TAG_CLOSE),
    re.DOTALL,
)
ENV_TAG = "<env>"


@dataclass
class RouterContext:
    """Per-request routing outcome."""

    model: str | None
    scenario_type: str = Constants.SCENARIO_DEFAULT
    token_count: int = 0
    session_id: str | None = None


def _second_system_block(body: dict[str, Any]) -> dict[str, Any] | None:
    system = body.get("system")
    if isinstance(system, list) and len(system) > 1 and isinstance(system[1], dict):
        return system[1]
    return None


def has_web_search_tool(tools: Any) -> bool:
    if not isinstance(tools, list):
        return False
    for tool in tools:
        if not isinstance(tool, dict):
            continue
        name = tool.get("name") or (tool.get(Constants.TOOL_FUNCTION) or {}).get("name") or ""
        if str(tool.get("type") or "").startswith("web_search") or str(name).startswith(
            "web_search"
        ):
            return True
    return False


class CustomRouterError(RuntimeError):
    pass


def load_custom_router(path: str) -> ModuleType:
    """Import a user router module from a file path; it must define ``route``."""
    resolved = os.path.abspath(os.path.expanduser(path))
    spec = importlib.util.spec_from_file_location("ccrouter_custom_router", resolved)
    if spec is None or spec.loader is None:
        raise CustomRouterError(f"Cannot load custom router from {resolved}")
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    if not callable(getattr(module, "route", None)):
        raise CustomRouterError(f"Custom router {resolved} does not define route()")
    return module


class Router:
    def __init__(
        self,
        config_service: ConfigService,
        provider_registry: ProviderRegistry,
        tokenizer_service: TokenizerService,
        session_usage: SessionUsageCache | None = None,
        project_overrides: ProjectOverrides | None = None,
    ) -> None:
        self.config_service = config_service
        self.provider_registry = provider_registry
        self.tokenizer_service = tokenizer_service
        self.session_usage = session_usage or SessionUsageCache()
        self.project_overrides = project_overrides
        self._custom_modules: dict[str, ModuleType] = {}

    @property
    def global_router(self) -> dict[str, Any]:
        return self.config_service.get("Router") or {}

    async def route(self, body: dict[str, Any]) -> RouterContext:
        """Pick the model for ``body`` and write it back into ``body["model"]``.

        May also rewrite the second system block (subagent tag removal,
        system prompt rewrite). Never raises.
        """
        session_id = session_id_from_user_id((body.get("metadata") or {}).get("user_id"))
        context = RouterContext(model=body.get("model"), session_id=session_id)

        try:
            self._rewrite_system_prompt(body)
            context.token_count = await self._count_tokens(body)

            model = await self._run_custom_router(body, context)
            if model:
                context.model = model
                context.scenario_type = Constants.SCENARIO_DEFAULT
            else:
                context.model, context.scenario_type = await self._select_model(body, context)
        except Exception as e:
            logger.error(f"Error in router: {e}", exc_info=True)
            context.model = self.global_router.get("default")
            context.scenario_type = Constants.SCENARIO_DEFAULT

        body["model"] = context.model
        return context

    def _rewrite_system_prompt(self, body: dict[str, Any]) -> None:
        path = self.config_service.get("REWRITE_SYSTEM_PROMPT")
        block = _second_system_block(body)
        if not path or block is None:
            return
        text = block.get("text")
        if not isinstance(text, str) or ENV_TAG not in text:
            return
        with open(os.path.expanduser(path), encoding="utf-8") as f:
            prompt = f.read()
        block["text"] = f"{prompt}{ENV_TAG}{text.split(ENV_TAG)[-1]}"

    async def _count_tokens(self, body: dict[str, Any]) -> int:
        model = body.get("model") or ""
        tokenizer_config = None
        if "," in model:
            provider_name, model_name = model.split(",", 1)
            tokenizer_config = self.tokenizer_service.get_tokenizer_config_for_model(
                provider_name, model_name
            )
        result = await self.tokenizer_service.count_tokens(
            {
                "messages": body.get("messages") or [],
                "system": body.get("system") or [],
                "tools": body.get("tools") or [],
            },
            tokenizer_config,
        )
        return result.token_count

    async def _run_custom_router(self, body: dict[str, Any], context: RouterContext) -> str | None:
        path = self.config_service.get("CUSTOM_ROUTER_PATH")
        if not path:
            return None
        try:
            module = self._custom_modules.get(path)
            if module is None:
                module = load_custom_router(path)
                self._custom_modules[path] = module
            result = module.route(
                body,
                self.config_service.get_all(),
                {"token_count": context.token_count, "session_id": context.session_id},
            )
            if inspect.isawaitable(result):
                result = await result
        except Exception as e:
            logger.error(f"Failed to run custom router {path}: {e}", exc_info=True)
            return None
        return result if isinstance(result, str) and result else None

    async def _select_model(
        self, body: dict[str, Any], context: RouterContext
    ) -> tuple[str | None, str]:
        model = body.get("model") or ""

        if "," in model:
            resolved = self.provider_registry.resolve_model_route(*model.split(",", 1))
            if resolved is not None:
                return f"{resolved[0]},{resolved[1]}", Constants.SCENARIO_DEFAULT
            return model, Constants.SCENARIO_DEFAULT

        override = None
        if self.project_overrides is not None:
            override = await self.project_overrides.router_for(context.session_id)
        router = override or self.global_router

        threshold = router.get("longContextThreshold") or DEFAULT_LONG_CONTEXT_THRESHOLD
        last_usage = self.session_usage.get(context.session_id)
        sticky = (
            last_usage is not None
            and last_usage.input_tokens > threshold
            and context.token_count > STICKY_LONG_CONTEXT_MIN_TOKENS
        )
        if (sticky or context.token_count > threshold) and router.get("longContext"):
            logger.info(
                f"Using long context model due to token count: {context.token_count}, "
                f"threshold: {threshold}"
            )
            return router["longContext"], Constants.SCENARIO_LONG_CONTEXT

        block = _second_system_block(body)
        text = block.get("text") if block else None
        if isinstance(text, str) and text.startswith(Constants.SUBAGENT_TAG_OPEN):
            match = SUBAGENT_PATTERN.search(text)
            if match:
                block["text"] = text.replace(match.group(0), "", 1)
                return match.group(1), Constants.SCENARIO_DEFAULT

        background = self.global_router.get("background")
        if "claude" in model and "haiku" in model and background:
            logger.info(f"Using background model for {model}")
            return background, Constants.SCENARIO_BACKGROUND

        if has_web_search_tool(body.get("tools")) and router.get("webSearch"):
            return router["webSearch"], Constants.SCENARIO_WEB_SEARCH

        if body.get("thinking") and router.get("think"):
            logger.info("Using think model for thinking request")
            return router["think"], Constants.SCENARIO_THINK

        return router.get("default"), Constants.SCENARIO_DEFAULT

    def record_usage(self, session_id: str | None, usage: dict[str, Any] | None) -> None:
        if session_id and usage:
            self.session_usage.put(session_id, usage)
