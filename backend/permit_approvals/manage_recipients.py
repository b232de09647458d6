"""
Command line management of approval notification recipients.

Usage:
    python -m permit_approvals.manage_recipients add "Jane Doe" jane@example.com
    python -m permit_approvals.manage_recipients list
    python -m permit_approvals.manage_recipients delete jane@example.com
"""
import asyncio
import sys
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker

from permit_approvals.config import settings
from permit_approvals.services import recipients as recipient_store
from permit_approvals.services.errors import ApprovalError

USAGE = __doc__


def print_recipients(recipients) -> None:
    if not recipients:
        print("No approval recipients configured.")
        return
    for r in recipients:
        print(f"  - {r.display_name} <{r.email}> [{r.id}]")


async def run(args: list[str], session_factory=None) -> int:
    """Execute one command. Returns the process exit code."""
    if not args or args[0] not in ("add", "list", "delete"):
        print(USAGE)
        return 1
    
    engine = None
    if session_factory is None:
        engine = create_async_engine(settings.database_url, echo=settings.debug)
        session_factory = async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)
    
    command = args[0]
    try:
        async with session_factory() as db:
            if command == "add":
                if len(args) < 3:
                    print('Error: Name and email are required.\nUsage: add "Name" email@example.com')
                    return 1
                recipients = await recipient_store.add_recipient(db, args[1], args[2])
                print(f"Added approval recipient: {args[1]} <{args[2]}>\n\nCurrent recipients:")
                print_recipients(recipients)
            elif command == "list":
                print_recipients(await recipient_store.list_recipients(db))
            else:
                if len(args) < 2:
                    print("Error: Email is required.\nUsage: delete email@example.com")
                    return 1
                email = args[1].strip().lower()
                match = next(
                    (r for r in await recipient_store.list_recipients(db) if r.email.lower() == email),
                    None
                )
                if match is None:
                    print(f"Error: {args[1]} is not on the notification list.")
                    return 1
                recipients = await recipient_store.delete_recipient(db, match.id)
                print(f"Removed approval recipient: {match.email}\n\nCurrent recipients:")
                print_recipients(recipients)
    except ApprovalError as e:
        print(f"Error: {e.message}")
        return 1
    finally:
        if engine is not None:
            await engine.dispose()
    
    return 0


if __name__ == "__main__":
    sys.exit(asyncio.run(run(sys.argv[1:])))
