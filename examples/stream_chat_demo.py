"""Minimal demonstration of a streamed chat session."""

import sys

from easybeam_core.api.service import ChatSession

if __name__ == "__main__":
    prompt_id = sys.argv[1] if len(sys.argv) > 1 else "lMID3"
    session = ChatSession("prompt", prompt_id, user_id="demo-user", variables={"test": "value"})

    def show(conversation):
        last = conversation.messages[-1]
        print(f"\r{last.role.value}: {last.content}", end="", flush=True)

    handle = session.send(
        "Hello!",
        on_update=show,
        on_close=lambda: print("\n[stream closed]"),
        on_error=lambda e: print(f"\n[error] {e.code}: {e.message}"),
    )
    handle.wait(120)
