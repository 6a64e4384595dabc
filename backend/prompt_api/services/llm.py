"""Async llama.cpp based LLM service with token streaming support."""

from __future__ import annotations

import asyncio
import logging
import threading
import time
from typing import Any, Callable, Dict, Iterator, List, Optional

from huggingface_hub import hf_hub_download
from llama_cpp import Llama

from prompt_api.config.settings import Settings
from prompt_api.observability.metrics import record_external_call
from prompt_api.utils.exceptions import (
    GenerationError,
    GenerationTimeoutError,
    LLMServiceError,
    ModelNotLoadedError,
)
from prompt_api.utils.streaming import TokenStream

logger = logging.getLogger(__name__)


class LLMService:
    """Async lifecycle manager and client for the llama.cpp model.

    The model is downloaded and loaded lazily on first use. Every call runs
    in a worker thread so the event loop is never blocked, and is bounded by
    ``llm_request_timeout``. A llama.cpp context serves one generation at a
    time, so worker threads take ``_inference_lock`` for the whole call; a
    stream holds it until its generator is closed.
    """

    def __init__(self, settings: Settings) -> None:
        self._settings = settings
        self._llm: Optional[Llama] = None
        self._model_path: Optional[str] = None
        self._load_lock = asyncio.Lock()
        self._inference_lock = threading.Lock()

    async def startup(self) -> None:
        """Download and load the configured model if required."""
        async with self._load_lock:
            if self._llm is not None:
                logger.debug("LLMService.startup invoked but model already loaded")
                return
            await self._download_and_load_model()

    async def _download_and_load_model(self) -> None:
        logger.info(
            "Downloading model '%s' from repo '%s'...",
            self._settings.llm_model_filename,
            self._settings.llm_repo_id,
        )

        try:
            self._model_path = await asyncio.to_thread(
                hf_hub_download,
                repo_id=self._settings.llm_repo_id,
                filename=self._settings.llm_model_filename,
                token=self._settings.hugging_face_hub_token,
            )
        except Exception as exc:
            logger.exception("Failed to download model")
            raise ModelNotLoadedError(
                f"Failed to download model: {exc}",
                details={"repo_id": self._settings.llm_repo_id},
            ) from exc

        logger.info("Model downloaded to: %s", self._model_path)

        try:
            self._llm = await asyncio.to_thread(self._load_llama_model, self._model_path)
        except Exception as exc:
            logger.exception("Failed to load model")
            raise ModelNotLoadedError(
                f"Failed to load model: {exc}",
                details={"model_path": self._model_path},
            ) from exc

        logger.info("Model loaded successfully.")

    def _load_llama_model(self, model_path: str) -> Llama:
        """Load the llama.cpp model (runs in thread pool)."""
        return Llama(
            model_path=model_path,
            n_gpu_layers=self._settings.llm_gpu_layers,
            n_batch=self._settings.llm_batch_size,
            n_threads=self._settings.llm_n_threads,
            n_ctx=self._settings.llm_context_size,
            verbose=False,
        )

    async def shutdown(self) -> None:
        """Release model resources."""
        async with self._load_lock:
            if self._llm is not None:
                logger.info("Releasing llama.cpp model instance")
                llm, self._llm = self._llm, None
                close = getattr(llm, "close", None)
                if close is not None:
                    await asyncio.to_thread(close)
            self._model_path = None

    @property
    def model(self) -> Llama:
        """Get the underlying llama.cpp model.

        Raises:
            ModelNotLoadedError: If model is not loaded
        """
        if self._llm is None:
            raise ModelNotLoadedError("LLM model is not loaded")
        return self._llm

    @property
    def is_ready(self) -> bool:
        return self._llm is not None

    def _sampling_params(self, overrides: Dict[str, Any]) -> Dict[str, Any]:
        params = {
            "temperature": self._settings.llm_temperature,
            "max_tokens": self._settings.llm_max_tokens,
        }
        params.update(overrides)
        return params

    async def ensure_ready(self) -> None:
        """Load the model on first use.

        Raises:
            ModelNotLoadedError: If the model cannot be downloaded or loaded
        """
        if not self.is_ready:
            logger.info("Model not loaded, triggering lazy load...")
            await self.startup()

    async def _call(self, operation: str, func: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
        """Run one blocking model call in a worker thread under the timeout."""
        await self.ensure_ready()

        timeout = kwargs.pop("timeout", self._settings.llm_request_timeout)

        def locked() -> Any:
            with self._inference_lock:
                return func(*args, **kwargs)

        started = time.perf_counter()
        outcome = "error"
        try:
            result = await asyncio.wait_for(asyncio.to_thread(locked), timeout=timeout)
            outcome = "success"
            return result
        except asyncio.CancelledError:
            outcome = "cancelled"
            raise
        except asyncio.TimeoutError as exc:
            logger.error("Generation timed out after %s seconds", timeout)
            raise GenerationTimeoutError(timeout) from exc
        except LLMServiceError:
            raise
        except Exception as exc:
            logger.exception("Generation failed")
            raise GenerationError(f"Text generation failed: {exc}", cause=exc) from exc
        finally:
            record_external_call("llama_cpp", operation, time.perf_counter() - started, outcome)

    async def generate(self, prompt: str, **kwargs: Any) -> str:
        """Run a plain completion and return the generated text.

        Raises:
            ModelNotLoadedError: If the model cannot be loaded
            GenerationError: If generation fails
            GenerationTimeoutError: If generation times out
        """
        params = self._sampling_params(kwargs)
        logger.debug("Completion with prompt length %d and params: %s", len(prompt), params)
        output = await self._call("completion", lambda **kw: self.model(prompt, **kw), **params)
        return output["choices"][0]["text"]

    async def chat(self, messages: List[Dict[str, str]], **kwargs: Any) -> str:
        """Run a chat completion and return the assistant message content."""
        params = self._sampling_params(kwargs)
        logger.debug("Chat completion with %d messages", len(messages))
        output = await self._call(
            "chat_completion",
            lambda **kw: self.model.create_chat_completion(messages=messages, **kw),
            **params,
        )
        return output["choices"][0]["message"]["content"] or ""

    def stream(self, prompt: str, **kwargs: Any) -> TokenStream:
        """Start a streamed completion and return its token stream immediately.

        Generation runs in a background task that pushes every text chunk into
        the returned stream. Cancelling the stream cancels that task. Call
        :meth:`ensure_ready` first so load failures surface before streaming.
        """
        token_stream = TokenStream()
        task = asyncio.create_task(
            self._produce(token_stream, prompt, self._sampling_params(kwargs)),
            name="llm-stream",
        )
        token_stream.attach_producer(task)
        return token_stream

    async def _produce(self, token_stream: TokenStream, prompt: str, params: Dict[str, Any]) -> None:
        timeout = params.pop("timeout", self._settings.llm_request_timeout)
        started = time.perf_counter()
        outcome = "error"
        try:
            await asyncio.wait_for(self._pump(token_stream, prompt, params), timeout=timeout)
            outcome = "success"
        except asyncio.CancelledError:
            logger.info("Stream generation cancelled")
            outcome = "cancelled"
            raise
        except asyncio.TimeoutError:
            logger.error("Streaming generation timed out after %s seconds", timeout)
            token_stream.fail(GenerationTimeoutError(timeout))
        except LLMServiceError as exc:
            token_stream.fail(exc)
        except Exception as exc:
            logger.exception("Streaming generation failed")
            token_stream.fail(GenerationError(f"Streaming generation failed: {exc}", cause=exc))
        finally:
            token_stream.close()
            record_external_call("llama_cpp", "stream", time.perf_counter() - started, outcome)

    async def _pump(self, token_stream: TokenStream, prompt: str, params: Dict[str, Any]) -> None:
        """Run the synchronous llama.cpp generator in one worker thread.

        Chunks are handed to the event loop with ``call_soon_threadsafe`` so
        they reach the stream in production order. When this coroutine is
        cancelled the worker stops after the chunk it is waiting on, closes
        the generator and only then releases the inference lock.
        """
        loop = asyncio.get_running_loop()
        stop = threading.Event()

        def deliver(token: str) -> None:
            if not token_stream.closed:
                token_stream.send(token)

        def run_generator() -> None:
            with self._inference_lock:
                chunks: Iterator[Dict[str, Any]] = self.model(prompt, stream=True, **params)
                try:
                    for chunk in chunks:
                        if stop.is_set():
                            logger.debug("Stream abandoned, stopping generation")
                            break
                        choices = chunk.get("choices") or [{}]
                        token = choices[0].get("text", "")
                        if token:
                            loop.call_soon_threadsafe(deliver, token)
                finally:
                    close = getattr(chunks, "close", None)
                    if close is not None:
                        close()

        try:
            await asyncio.to_thread(run_generator)
        finally:
            stop.set()
