"""
Credential and model routing for generation requests.

Three modes decide which credential goes with a request:

- ``server-default``: none; the server uses its own key
- ``stored``: the key saved in settings, failing fast when absent
- ``prompt``: ask the user for a key before sending anything

Prompt mode is the only place a request suspends for user input. Each
request owns its ``CredentialRequest``, so two prompts in flight at once
cannot resolve each other.
"""

import asyncio
import inspect
import logging
from typing import Awaitable, Callable, Optional, Union

from .errors import CredentialAcquisitionCancelled, NoUsableCredential
from .types import ApiKeyMode, KeyRoutingDecision

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "gemini-2.5-flash"


class CredentialRequest:
    """
    A one-shot, awaitable request for a credential.

    The host shows a key-entry affordance and calls ``submit()`` or
    ``cancel()`` exactly once; later calls are ignored.
    """

    def __init__(self, model: str):
        self.model = model
        self._future: asyncio.Future = asyncio.get_running_loop().create_future()

    @property
    def done(self) -> bool:
        return self._future.done()

    def submit(self, key: Optional[str]) -> bool:
        """Resume the waiting request with ``key``. A blank key cancels."""
        if self._future.done():
            return False
        if not key or not key.strip():
            return self.cancel()
        self._future.set_result(key.strip())
        return True

    def cancel(self) -> bool:
        """Abort the waiting request; it fails without sending anything."""
        if self._future.done():
            return False
        self._future.set_exception(CredentialAcquisitionCancelled("API key entry was cancelled"))
        return True

    def __await__(self):
        return self._future.__await__()


PromptHandler = Callable[[CredentialRequest], Union[None, Awaitable[None]]]


class KeyRouter:
    """
    Resolve the credential and model for each request.

    Args:
        mode: how the credential is obtained
        stored_key: the saved key, used in stored mode
        model: model identifier, passed through unchanged
        prompt_handler: called with a fresh CredentialRequest in prompt mode;
            may be a coroutine function
    """

    def __init__(
        self,
        mode: Union[ApiKeyMode, str] = ApiKeyMode.SERVER_DEFAULT,
        stored_key: Optional[str] = None,
        model: Optional[str] = None,
        prompt_handler: Optional[PromptHandler] = None,
    ):
        self.mode = ApiKeyMode(mode)
        self.stored_key = stored_key
        self.model = model or DEFAULT_MODEL
        self.prompt_handler = prompt_handler

    def check(self) -> None:
        """
        Fail fast on configurations that can never produce a key.

        Raises:
            NoUsableCredential: stored mode without a key, or prompt mode
                without a way to ask
        """
        if self.mode is ApiKeyMode.STORED and not (self.stored_key and self.stored_key.strip()):
            raise NoUsableCredential("No API key is stored. Save one in settings or change the key mode.")
        if self.mode is ApiKeyMode.PROMPT and self.prompt_handler is None:
            raise NoUsableCredential("Key mode is 'prompt' but nothing can ask for a key")

    async def resolve(self) -> KeyRoutingDecision:
        """
        Produce the routing decision for one request.

        Raises:
            NoUsableCredential: no key is available for the mode
            CredentialAcquisitionCancelled: the user dismissed the prompt
        """
        self.check()

        if self.mode is ApiKeyMode.SERVER_DEFAULT:
            return KeyRoutingDecision(self.mode, self.model)

        if self.mode is ApiKeyMode.STORED:
            return KeyRoutingDecision(self.mode, self.model, self.stored_key.strip())

        request = CredentialRequest(self.model)
        result = self.prompt_handler(request)
        if inspect.isawaitable(result):
            await result
        logger.debug("Waiting for credential entry")
        key = await request
        return KeyRoutingDecision(self.mode, self.model, key)
