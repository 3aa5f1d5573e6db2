"""Interactive UI components for picking participants and confirming payments."""

import logging
from typing import Any

from prompt_toolkit import PromptSession
from prompt_toolkit.completion import Completer, Completion
from prompt_toolkit.document import Document

from ..models import SettlementInstruction
from .money import format_amount

logger = logging.getLogger(__name__)


def fuzzy_match(query: str, text: str) -> bool:
    """
    Fuzzy match: all characters in query must appear in order in text.

    Example:
        query="crl" matches "carol"
    """
    query_idx = 0
    for char in text:
        if query_idx < len(query) and char == query[query_idx]:
            query_idx += 1
    return query_idx == len(query)


class MemberCompleter(Completer):
    """Fuzzy search completer over the members of a group."""

    def __init__(self, members: list[str]):
        """Initialize the completer with the selectable members."""
        self.members = sorted(members)
        self.chosen: set[str] = set()

    def get_completions(self, document: Document, complete_event: Any):
        """Get fuzzy-matched completions for members not yet chosen."""
        query = document.text.lower()

        for member in self.members:
            if member in self.chosen:
                continue
            if fuzzy_match(query, member.lower()):
                yield Completion(
                    text=member,
                    start_position=-len(document.text),
                    display=member,
                )


def select_participants_interactive(
    members: list[str], paid_by: str
) -> list[str] | None:
    """
    Interactively build the list of members sharing an expense.

    Args:
        members: Current members of the group
        paid_by: The payer, offered as the first participant

    Returns:
        Selected members, or None if the user cancelled
    """
    completer = MemberCompleter(members)
    session: PromptSession[str] = PromptSession(completer=completer)

    print("\n👥 Split with (Tab to complete, empty line to finish, Ctrl+C to cancel)")

    default_text = paid_by if paid_by in members else ""
    try:
        while True:
            result = session.prompt(
                "Member: ", default=default_text, complete_while_typing=True
            ).strip()
            default_text = ""

            if not result:
                break

            if result not in completer.members:
                print(f"❌ '{result}' is not a member of this group.")
                continue

            completer.chosen.add(result)
            print(f"   ✓ {', '.join(sorted(completer.chosen))}")

    except KeyboardInterrupt:
        print("\n⏭️  Cancelled")
        return None
    except EOFError:
        pass

    logger.debug(f"Selected participants: {sorted(completer.chosen)}")
    return sorted(completer.chosen)


def confirm_settlement(instruction: SettlementInstruction) -> bool:
    """
    Simple yes/no confirmation before marking a payment as settled.

    Returns:
        True if confirmed, False otherwise
    """
    print(
        f"\n💸 {instruction.payer} pays {instruction.payee} "
        f"{format_amount(instruction.amount_minor)}"
    )
    print(f"   Settles {len(instruction.split_ids)} splits")

    response = input("   Mark as settled? [y/N] ").strip().lower()

    return response in ("y", "yes")
