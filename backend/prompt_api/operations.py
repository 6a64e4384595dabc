"""Declarative registry of the text generation operations served over HTTP."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Awaitable, Callable, Iterable, Iterator, Mapping, Optional, Tuple, Union

from prompt_api.utils.streaming import TokenStream

if TYPE_CHECKING:
    from prompt_api.services.llm import LLMService


@dataclass(frozen=True, slots=True)
class TextResult:
    """A completed generation."""

    text: str


@dataclass(frozen=True, slots=True)
class StreamResult:
    """A generation still in progress, delivered chunk by chunk."""

    stream: TokenStream


ExecutionResult = Union[TextResult, StreamResult]

InputBundle = Mapping[str, str]

Executor = Callable[[InputBundle, "LLMService"], Awaitable[ExecutionResult]]


@dataclass(frozen=True)
class Operation:
    """A named, routable text generation capability."""

    id: str
    route: str
    method: str
    description: str
    input_fields: Tuple[str, ...]
    execute: Executor
    streaming: bool = False

    def __post_init__(self) -> None:
        if not self.input_fields:
            raise ValueError(f"Operation '{self.id}' must declare at least one input field")
        if len(set(self.input_fields)) != len(self.input_fields):
            raise ValueError(f"Operation '{self.id}' declares duplicate input fields")
        if not self.route.startswith("/"):
            raise ValueError(f"Operation '{self.id}' route must start with '/'")


class OperationRegistry:
    """Ordered, read-only collection of operations."""

    def __init__(self, operations: Iterable[Operation]) -> None:
        self._operations: Tuple[Operation, ...] = tuple(operations)

        seen_ids: set[str] = set()
        seen_routes: set[tuple[str, str]] = set()
        for operation in self._operations:
            if operation.id in seen_ids:
                raise ValueError(f"Duplicate operation id: {operation.id}")
            endpoint = (operation.method.lower(), operation.route)
            if endpoint in seen_routes:
                raise ValueError(f"Duplicate route: {operation.method.upper()} {operation.route}")
            seen_ids.add(operation.id)
            seen_routes.add(endpoint)

    def __iter__(self) -> Iterator[Operation]:
        return iter(self._operations)

    def __len__(self) -> int:
        return len(self._operations)

    def get(self, operation_id: str) -> Optional[Operation]:
        for operation in self._operations:
            if operation.id == operation_id:
                return operation
        return None


CHAT_TRANSLATION_SYSTEM_PROMPT = (
    "You are a helpful assistant that translates {Input Language} to {Output Language}."
)

TRANSLATION_PROMPT = (
    "Translate the following text from {Input Language} to {Output Language}\n```{Text}```\n\n"
)

POEM_PROMPT = "Write me a very short poem about {Topic}."


async def chat_translate(inputs: InputBundle, llm: "LLMService") -> ExecutionResult:
    messages = [
        {"role": "system", "content": CHAT_TRANSLATION_SYSTEM_PROMPT.format_map(inputs)},
        {"role": "user", "content": inputs["Text"]},
    ]
    return TextResult(text=await llm.chat(messages))


async def translate(inputs: InputBundle, llm: "LLMService") -> ExecutionResult:
    return TextResult(text=await llm.generate(TRANSLATION_PROMPT.format_map(inputs)))


async def write_poem(inputs: InputBundle, llm: "LLMService") -> ExecutionResult:
    await llm.ensure_ready()
    return StreamResult(stream=llm.stream(POEM_PROMPT.format_map(inputs)))


def default_registry() -> OperationRegistry:
    """Build the registry of operations the service exposes."""
    return OperationRegistry(
        [
            Operation(
                id="chat-translation",
                route="/chat-translate",
                method="post",
                description="Translates a text from one language to another using a chat model.",
                input_fields=("Input Language", "Output Language", "Text"),
                execute=chat_translate,
            ),
            Operation(
                id="translation",
                route="/translate",
                method="post",
                description="Translates a text from one language to another",
                input_fields=("Input Language", "Output Language", "Text"),
                execute=translate,
            ),
            Operation(
                id="poem",
                route="/poem",
                method="post",
                description="Generates a short poem about your topic (streamed)",
                input_fields=("Topic",),
                execute=write_poem,
                streaming=True,
            ),
        ]
    )
