#!/usr/bin/env python
"""Interactive question loop against a running Maintenance Assistant.

Usage:
    python scripts/ask.py --url http://localhost:5000 --token $API_TOKEN
"""
import argparse
import asyncio
import os
import sys
from pathlib import Path

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from maintenance_assistant.client import ConversationHistory, QueryClient, QueryFailed


async def chat(url: str, token: str) -> None:
    client = QueryClient(url, token=token)
    history = ConversationHistory()

    try:
        while True:
            try:
                question = input("\nyou> ").strip()
            except EOFError:
                break

            if not question:
                continue
            if question in {"/quit", "/exit"}:
                break
            if question == "/reset":
                history.clear()
                print("(history cleared)")
                continue

            try:
                answer = await client.ask(question, history)
            except QueryFailed as e:
                print(f"error [{e.status}]: {e.message}")
                continue

            print(f"\nassistant> {answer}")
    finally:
        await client.aclose()


def main():
    parser = argparse.ArgumentParser(description="Ask the maintenance assistant")
    parser.add_argument("--url", default="http://localhost:5000")
    parser.add_argument("--token", default=os.getenv("API_TOKEN"))
    args = parser.parse_args()

    try:
        asyncio.run(chat(args.url, args.token))
    except KeyboardInterrupt:
        print()


if __name__ == "__main__":
    main()
