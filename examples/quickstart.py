# examples/quickstart.py
"""
Quickstart: plain turns, a cancelled turn and a CodeAct agent turn
against an in-process toy engine.

The toy engine streams canned replies word by word; the toy interpreter
runs code in-process and is NOT a sandbox.
"""

import asyncio
import contextlib
import io
import itertools
import logging

from chuk_ai_turn_orchestrator import RunOutput, StreamChunk, TurnOrchestrator

logging.basicConfig(level=logging.INFO)


class ToyEngine:
    """Streams canned replies; agent turns first ask for code, then answer."""

    def __init__(self):
        self._ids = itertools.count(1)

    async def create_session(self, system_prompt, recent_turns=None):
        return f"toy-{next(self._ids)}"

    async def complete_stream(self, session_handle, prompt, params, system_prompt, recent_turns, document_context=None):
        if prompt.startswith("Observation:"):
            text = f"The code printed: {prompt.splitlines()[-1]}"
        elif "<execute>" in system_prompt:
            text = "Let me check.\n<execute>\nprint(sum(range(10)))\n</execute>"
        elif prompt == "slow":
            text = " ".join(["word"] * 200)
        else:
            text = f"<think>The user said {prompt!r}.</think>You said: {prompt}"

        async def chunks():
            for word in text.split(" "):
                await asyncio.sleep(0.01)
                yield StreamChunk.delta(word + " ")
            yield StreamChunk.done(full_text=text, completion_tokens=len(text.split()))

        return chunks(), session_handle

    async def finalize_completed(self, session_handle, prompt_tokens, completion_tokens, decode_ms, finish_reason):
        pass

    async def finalize_cancelled(self, session_handle):
        print(f"  engine: {session_handle} aborted")

    async def finalize_failed(self, session_handle, reason):
        pass

    async def reset_and_replay(self, session_handle, system_prompt, recent_turns, narrative_summary=None, document_context=None):
        return f"toy-{next(self._ids)}"

    async def evict_session(self, session_handle):
        pass


class ToyInterpreter:
    async def run(self, code):
        buffer = io.StringIO()
        try:
            with contextlib.redirect_stdout(buffer):
                exec(code, {})
        except Exception as e:
            return RunOutput(stdout=buffer.getvalue(), error=f"{type(e).__name__}: {e}")
        return RunOutput(stdout=buffer.getvalue())


class PrintingStore:
    async def write(self, conversation_id, title, messages):
        print(f"  store: wrote {len(messages)} messages to {conversation_id!r} ({title!r})")

    async def write_incremental(self, conversation_id, title, messages, existing_message_ids):
        new = len(messages) - len(existing_message_ids)
        print(f"  store: appended {new} messages to {conversation_id!r}")


async def main():
    orchestrator = TurnOrchestrator(ToyEngine(), sandbox=ToyInterpreter(), store=PrintingStore())

    print("1. Plain turn")
    outcome = await orchestrator.send_turn("demo", "hello there")
    reply = outcome.messages[-1]
    print(f"  answer:    {reply.content}")
    print(f"  reasoning: {reply.reasoning}")
    print(f"  metrics:   {reply.metrics}")

    print("2. Streaming turn, cancelled after a few previews")
    previews = 0
    stream = orchestrator.stream_turn("demo", "slow")
    async for item in stream:
        previews += 1
        if previews == 3:
            break
    await stream.aclose()
    print(f"  last message: {orchestrator.messages('demo')[-1].metrics}")

    print("3. Agent turn")
    orchestrator.set_agent_mode("demo", True)
    outcome = await orchestrator.send_turn("demo", "what is the sum of 0..9?")
    for message in outcome.messages:
        print(f"  {message.role.value}: {message.content!r}")

    await orchestrator.shutdown()
    print(orchestrator.stats())


if __name__ == "__main__":
    asyncio.run(main())
