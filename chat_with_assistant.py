#!/usr/bin/env python3
"""
🤖 Chat with the Career Assistant - Interactive Terminal Interface

Runs the same conversation session the site widget uses. With
ASSISTANT_API_URL set it talks to a deployed API; otherwise it drives the
gateway in-process (needs CLAUDE_API_KEY, and SLACK_WEBHOOK_URL for hand-off).

Usage:
    python3 chat_with_assistant.py

Commands:
    /quit or /exit - Exit the chat
    /clear - Start a new session
    /handoff - Submit contact details once the assistant offers live chat
    /debug - Toggle debug mode (show session state)
"""

import sys
import time
from typing import Callable

from dotenv import load_dotenv

from career_assistant.config import settings
from career_assistant.core.api_client import HttpAssistantBackend, InProcessAssistantBackend
from career_assistant.core.completion_gateway import CompletionGateway
from career_assistant.core.completion_provider import AnthropicCompletionProvider
from career_assistant.flows.conversation_session import ConversationSession
from career_assistant.notifications.slack_relay import SlackNotificationRelay
from career_assistant.state.conversation_state import ConversationTurn, HandoffState, TurnRole

load_dotenv()


# Colors for terminal output
class Colors:
    BLUE = '\033[94m'
    GREEN = '\033[92m'
    YELLOW = '\033[93m'
    RED = '\033[91m'
    BOLD = '\033[1m'
    END = '\033[0m'
    CYAN = '\033[96m'
    MAGENTA = '\033[95m'


def print_assistant(message: str):
    print(f"\n{Colors.BLUE}{Colors.BOLD}Assistant:{Colors.END} {message}\n")


def print_debug(message: str):
    print(f"{Colors.YELLOW}[DEBUG] {message}{Colors.END}")


def print_system(message: str):
    print(f"{Colors.CYAN}{message}{Colors.END}")


def print_separator():
    print(f"{Colors.MAGENTA}{'=' * 80}{Colors.END}")


def print_turn(turn: ConversationTurn):
    """Echo non-user turns as they are appended to the transcript."""
    if turn.role == TurnRole.ASSISTANT:
        print_assistant(turn.text)
    elif turn.role == TurnRole.TRANSITION:
        print(f"\n{Colors.MAGENTA}{turn.text}{Colors.END}")
        print_system("Type /handoff to send your details.\n")
    elif turn.role == TurnRole.SYSTEM:
        print_system(f"\n{turn.text}\n")


def run_now(delay: float, callback: Callable[[], None]):
    """Keep terminal output ordered: delayed work runs after a short pause."""
    time.sleep(min(delay, 1.0))
    callback()


def build_backend():
    api_url = settings.get_assistant_api_url()
    if api_url:
        print_system(f"Using API at {api_url}")
        return HttpAssistantBackend(api_url)

    api_key = settings.get_claude_api_key()
    provider = AnthropicCompletionProvider(api_key) if api_key else None
    if provider is None:
        print(f"{Colors.YELLOW}⚠️  CLAUDE_API_KEY not set; replies will fail.{Colors.END}")
    webhook_url = settings.get_slack_webhook_url()
    relay = SlackNotificationRelay(webhook_url) if webhook_url else None
    return InProcessAssistantBackend(CompletionGateway(provider), relay=relay)


def new_session(backend) -> ConversationSession:
    session = ConversationSession(
        backend,
        scheduler=run_now,
        voice_output_enabled=False,
        on_turn=print_turn,
    )
    session.start()
    return session


def prompt_handoff(session: ConversationSession):
    if session.handoff_state != HandoffState.OFFERED:
        print_system("\nLive chat hasn't been offered yet. Keep chatting!\n")
        return
    default_name = session.handoff.name if session.handoff else ""
    name = input(f"Name [{default_name}]: ").strip() or default_name
    email = input("Email: ").strip()
    company = input("Company (optional): ").strip()
    session.submit_handoff(name, email, company)


def main():
    print_separator()
    print(f"{Colors.BOLD}{Colors.CYAN}🤖 {settings.OWNER_NAME}'s AI Career Assistant{Colors.END}")
    print_separator()
    print("\nInitializing...")

    try:
        backend = build_backend()
    except Exception as e:
        print(f"{Colors.RED}❌ Initialization failed: {e}{Colors.END}")
        sys.exit(1)

    print_system("Commands: /quit (exit) | /clear (reset) | /handoff (send details) | /debug (toggle debug)")
    session = new_session(backend)
    debug_mode = False

    while True:
        try:
            user_input = input(f"{Colors.GREEN}You: {Colors.END}").strip()
            if not user_input:
                continue

            command = user_input.lower()
            if command in ['/quit', '/exit']:
                session.close()
                print_system("\n👋 Thanks for chatting! Goodbye!")
                break

            if command == '/clear':
                session.close()
                print_system("\n🗑️  Conversation cleared!\n")
                session = new_session(backend)
                continue

            if command == '/debug':
                debug_mode = not debug_mode
                print_system(f"\n🔧 Debug mode: {'ON' if debug_mode else 'OFF'}\n")
                continue

            if command == '/handoff':
                prompt_handoff(session)
                continue

            session.submit_text(user_input)

            if debug_mode:
                print_debug(f"Network: {session.network_state.value} | Hand-off: {session.handoff_state.value}")
                print_debug(
                    f"Responses: {session.progress.response_count} | "
                    f"Score: {session.progress.cumulative_score} | Qualified: {session.progress.qualified}"
                )

        except KeyboardInterrupt:
            session.close()
            print_system("\n\n👋 Interrupted. Thanks for chatting!")
            break
        except EOFError:
            session.close()
            print_system("\n\n👋 EOF received. Goodbye!")
            break


if __name__ == "__main__":
    main()
