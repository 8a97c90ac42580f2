"""CLI interface for Nomorize."""

import shlex
from datetime import date, datetime
from pathlib import Path

from .ai import (
    BriefingGenerator,
    CompletionGateway,
    ConnectionFinder,
    ContentAnalyzer,
    ConversationalResponder,
    has_recall,
)
from .ai.parsing import parse_instant
from .backup import BackupFormatError, backup_filename
from .config import AppSettings, NomorizeConfig
from .curation import MemoryCurator
from .logging import JSONLLogger, configure_logger
from .models import ChatMessage, Memory, MemoryKind
from .providers import GeminiProvider, GroqProvider, WebSearch
from .store import MemoryNotFoundError, MemoryStore

BANNER = """
╔══════════════════════════════════════════╗
║           🧠 Nomorize v0.1.0             ║
║      Personal memory with Cortex         ║
╚══════════════════════════════════════════╝

Type a question to ask Cortex about your memories.

Commands:
  /add <text>             - Save a text memory
  /image <path> [text]    - Save an image memory
  /import-images <paths>  - Bulk import images
  /list                   - List recent memories
  /search <query>         - Search memories
  /pin <id>               - Pin or unpin a memory
  /delete <id>            - Delete a memory
  /remind <id> <iso|clear>- Set or clear a reminder
  /reminders              - List upcoming reminders
  /links <id> [ids...]    - Confirm suggested links
  /link <id> <other>      - Link two memories
  /summarize <ids...>     - Summarize selected memories
  /brief                  - Brief on due reminders
  /export [path]          - Export a JSON backup
  /import <path>          - Import a JSON backup
  /settings [key value]   - Show or change settings
  /exit, /quit            - Exit the CLI
  /help                   - Show this help
"""


def build_curator(
    config: NomorizeConfig,
    store: MemoryStore,
    event_log: JSONLLogger | None = None,
) -> MemoryCurator:
    """Wire the AI pipeline for a configuration."""
    if config.provider == "groq":
        provider = GroqProvider(
            web_search=WebSearch(config.tavily_api_key),
            **({"model": config.groq_model} if config.groq_model else {}),
        )
    else:
        provider = GeminiProvider()

    gateway = CompletionGateway(
        provider, default_api_key=config.default_api_key, event_log=event_log
    )
    return MemoryCurator(
        store,
        ContentAnalyzer(gateway, event_log=event_log),
        ConnectionFinder(gateway),
        BriefingGenerator(gateway),
        ConversationalResponder(gateway),
        event_log=event_log,
    )


def format_memory(memory: Memory) -> str:
    """One-line summary of a memory."""
    flags = ""
    if memory.is_pinned:
        flags += "📌"
    if memory.reminder_at:
        flags += f"⏰{memory.reminder_at:%Y-%m-%d %H:%M}"
    preview = memory.content.replace("\n", " ")
    if len(preview) > 60:
        preview = preview[:57] + "..."
    tags = " ".join(f"#{t}" for t in memory.tags)
    return f"{memory.id[:8]} [{memory.kind.value}] {flags} {preview} {tags}".rstrip()


def format_reply(message: ChatMessage) -> str:
    """Format a Cortex reply for display."""
    output = ["\n" + "─" * 40, message.text, "─" * 40]
    if message.related_memory_ids:
        ids = ", ".join(i[:8] for i in message.related_memory_ids)
        output.append(f"🔗 Related: {ids}")
    return "\n".join(output)


class CLI:
    """Interactive command-line interface for Nomorize."""

    def __init__(self, curator: MemoryCurator) -> None:
        self.curator = curator
        self.store = curator.store

    def _resolve_id(self, prefix: str) -> str:
        """Resolve a full or abbreviated memory id."""
        if self.store.get_memory(prefix) is not None:
            return prefix
        matches = [m.id for m in self.store.list_memories(limit=None) if m.id.startswith(prefix)]
        if len(matches) != 1:
            raise MemoryNotFoundError(prefix)
        return matches[0]

    def _show_suggestions(self, memory: Memory) -> None:
        pending = self.curator.pending_links(memory.id)
        if pending:
            print("🔗 Related memories found, confirm with /links "
                  f"{memory.id[:8]} [ids...]:")
            for memory_id in pending:
                related = self.store.get_memory(memory_id)
                if related is not None:
                    print(f"   {format_memory(related)}")

    async def _cmd_add(self, args: list[str], kind: MemoryKind = MemoryKind.TEXT) -> None:
        memory = await self.curator.capture(kind, " ".join(args))
        print(f"✓ Saved {format_memory(memory)}")
        self._show_suggestions(memory)

    async def _cmd_image(self, args: list[str]) -> None:
        memory = await self.curator.capture(
            MemoryKind.IMAGE, " ".join(args[1:]), attachment_ref=args[0]
        )
        print(f"✓ Saved {format_memory(memory)}")
        self._show_suggestions(memory)

    async def _cmd_remind(self, args: list[str]) -> None:
        memory_id = self._resolve_id(args[0])
        if args[1].lower() == "clear":
            memory = await self.curator.clear_reminder(memory_id)
        else:
            when = parse_instant(args[1])
            if when is None:
                print(f"❌ Not an ISO date: {args[1]}")
                return
            memory = await self.curator.set_reminder(memory_id, when)
        print(f"✓ {format_memory(memory)}")

    def _cmd_reminders(self) -> None:
        now = datetime.now()
        upcoming = sorted(
            (m for m in self.store.list_memories(limit=None)
             if m.reminder_at is not None and m.reminder_at > now),
            key=lambda m: m.reminder_at,
        )
        if not upcoming:
            print("No upcoming reminders.")
        for memory in upcoming:
            print(format_memory(memory))

    async def _cmd_brief(self) -> None:
        briefings = await self.curator.check_reminders()
        if not briefings:
            print("No reminders due.")
        for memory, text in briefings:
            header = "⚠️ Recall" if has_recall(text) else "📅 Reminder"
            print(f"\n{header} for {memory.id[:8]}:\n{text}")

    def _cmd_settings(self, args: list[str]) -> None:
        settings = self.curator.settings()
        if len(args) >= 2:
            key, value = args[0], " ".join(args[1:])
            current = getattr(settings, key, None)
            if current is None or key not in settings.__dataclass_fields__:
                print(f"❌ Unknown setting: {key}")
                return
            if isinstance(current, bool):
                setattr(settings, key, value.lower() in ("1", "true", "yes", "on"))
            else:
                setattr(settings, key, value)
            settings = self.store.save_settings(AppSettings.from_dict(settings.to_dict()))
        for key, value in settings.to_dict().items():
            if key == "api_key" and value:
                value = "****"
            print(f"  {key}: {value}")

    async def _handle_command(self, command: str) -> bool:
        """Handle a slash command. Returns True to continue, False to exit."""
        try:
            parts = shlex.split(command)
        except ValueError as e:
            print(f"❌ {e}")
            return True
        if not parts:
            return True
        cmd, args = parts[0].lower(), parts[1:]

        if cmd in ("/exit", "/quit", "exit", "quit"):
            print("\n👋 Goodbye!")
            return False

        try:
            if cmd == "/help":
                print(BANNER)
            elif cmd == "/add" and args:
                await self._cmd_add(args)
            elif cmd == "/image" and args:
                await self._cmd_image(args)
            elif cmd == "/import-images" and args:
                memories = await self.curator.import_images(args)
                for memory in memories:
                    print(f"✓ {format_memory(memory)}")
            elif cmd == "/list":
                for memory in self.store.list_memories():
                    print(format_memory(memory))
            elif cmd == "/search" and args:
                for memory in self.store.search_memories(" ".join(args)):
                    print(format_memory(memory))
            elif cmd == "/pin" and args:
                memory = await self.curator.toggle_pin(self._resolve_id(args[0]))
                print(f"✓ {format_memory(memory)}")
            elif cmd == "/delete" and args:
                await self.curator.delete(self._resolve_id(args[0]))
                print("✓ Deleted")
            elif cmd == "/remind" and len(args) >= 2:
                await self._cmd_remind(args)
            elif cmd == "/reminders":
                self._cmd_reminders()
            elif cmd == "/links" and args:
                memory_id = self._resolve_id(args[0])
                accepted = [self._resolve_id(a) for a in args[1:]] or None
                memory = await self.curator.confirm_links(memory_id, accepted)
                print(f"✓ Linked to {len(memory.linked_memory_ids)} memories")
            elif cmd == "/link" and len(args) >= 2:
                await self.curator.link_memories(
                    self._resolve_id(args[0]), self._resolve_id(args[1])
                )
                print("✓ Linked")
            elif cmd == "/summarize" and args:
                reply = await self.curator.summarize_selection(
                    [self._resolve_id(a) for a in args]
                )
                print(format_reply(reply))
            elif cmd == "/brief":
                await self._cmd_brief()
            elif cmd == "/export":
                path = Path(args[0]) if args else Path(backup_filename(date.today().isoformat()))
                count = self.curator.export_backup(path)
                print(f"✓ Exported {count} memories to {path}")
            elif cmd == "/import" and args:
                count = await self.curator.import_backup(Path(args[0]))
                print(f"✓ Imported {count} memories")
            elif cmd == "/settings":
                self._cmd_settings(args)
            else:
                print(f"Unknown command: {command}. Type /help for help.")
        except MemoryNotFoundError as e:
            print(f"❌ No single memory matches {e}")
        except (BackupFormatError, OSError, ValueError) as e:
            print(f"❌ {e}")

        return True

    async def _process_message(self, message: str) -> None:
        """Ask Cortex a question."""
        reply = await self.curator.ask(message)
        print(format_reply(reply))

    async def run(self) -> None:
        """Run the interactive CLI."""
        print(BANNER)

        try:
            while True:
                try:
                    user_input = input("you> ").strip()

                    if not user_input:
                        continue

                    if user_input.startswith("/") or user_input.lower() in ("exit", "quit"):
                        if not await self._handle_command(user_input):
                            break
                        continue

                    await self._process_message(user_input)

                except KeyboardInterrupt:
                    print("\n\n⚡ Interrupted")
                    try:
                        confirm = input("Exit? (y/n): ").strip().lower()
                        if confirm in ("y", "yes"):
                            print("👋 Goodbye!")
                            break
                    except (KeyboardInterrupt, EOFError):
                        print("\n👋 Goodbye!")
                        break

                except EOFError:
                    print("\n👋 Goodbye!")
                    break
        finally:
            self.store.close()


async def run_cli() -> None:
    """Run the CLI with configuration from the environment."""
    config = NomorizeConfig.from_env()
    event_log = configure_logger(config.log_dir)

    if not config.default_api_key:
        print(f"⚠ No API key for provider '{config.provider}'. "
              "Set it in your .env file or with /settings api_key <key>")

    store = MemoryStore(config.db_path)
    store.init_db()

    cli = CLI(build_curator(config, store, event_log))
    await cli.run()
