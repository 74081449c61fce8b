#!/usr/bin/env python3
"""
Basic usage example for Grove.

This example demonstrates how to:
1. Create an orchestrator for the current workspace (or ~/.grove)
2. Register the current repository with a .grove.json
3. Create a grove and follow its progress events
4. Close the grove again
"""

from pathlib import Path

import anyio

from grove import Config, GroveConfigResolver, GroveError, RepositorySelection, create_orchestrator
from grove.models import GroveRepoConfig


async def print_events(queue):
    """Print progress events until the queue is closed with None."""
    while True:
        event = await queue.get()
        if event is None:
            return
        print(f"   {event}")


async def basic_example():
    """Basic usage example."""
    config = Config.from_env(init_action_timeout=300)
    orchestrator = create_orchestrator(config, cwd=Path.cwd())

    repo_path = Path.cwd()  # Current directory should be a git repo
    repository = orchestrator.repositories.get_by_path(repo_path)
    if repository is None:
        print("📦 Registering repository...")
        repository = orchestrator.register_repository(repo_path)

    # Local overrides stay out of version control
    resolver = GroveConfigResolver()
    if not (repo_path / ".grove.local.json").exists():
        resolver.write_config(repo_path, GroveRepoConfig(
            file_copy_patterns=[".env*"],
            init_actions=["git log -1 --oneline"],
        ), local=True)

    queue = orchestrator.new_progress_queue()
    selection = RepositorySelection(repository=repository)

    print("🌳 Creating grove...")
    result = None
    async with anyio.create_task_group() as tg:
        tg.start_soon(print_events, queue)
        # Errors are handled here; a task group would wrap them in an ExceptionGroup
        try:
            result = await orchestrator.create_grove("Example grove", [selection], queue)
        except GroveError as e:
            print(f"❌ Error: {e}")
        finally:
            await queue.put(None)

    if result is None:
        return

    try:
        grove = result.metadata
        print(f"✅ Created grove: {grove.name} ({grove.id})")
        for worktree in grove.worktrees:
            print(f"   {worktree.display_name}: {worktree.worktree_path} [{worktree.branch}]")
            if worktree.init_actions_status:
                status = worktree.init_actions_status
                print(f"   Init actions: {status.successful_actions}/{status.total_actions}")

        print("\n🧹 Closing grove...")
        closed = await orchestrator.close_grove(grove.id)
        print(f"{'✅' if closed.success else '⚠️ '} {closed.message}")
        for error in closed.errors:
            print(f"   {error}")

    except GroveError as e:
        print(f"❌ Error: {e}")


async def listing_example():
    """Example showing how to inspect existing groves."""
    orchestrator = create_orchestrator(cwd=Path.cwd())

    entries = orchestrator.list_groves(include_closed=True)
    print(f"📋 {len(entries)} grove(s)")
    for entry in entries:
        print(f"   {entry.reference.name}: {len(entry.worktrees)} worktree(s)")

    orphaned = orchestrator.find_orphaned_groves()
    if orphaned:
        print(f"⚠️  {len(orphaned)} orphaned grove(s), run `grove prune` to clean up")


if __name__ == "__main__":
    print("Grove - Basic Usage Example")
    print("=" * 50)

    if not (Path.cwd() / ".git").exists():
        print("❌ Error: This example must be run from within a git repository.")
        print("   Please navigate to your git repository and try again.")
        exit(1)

    print("\n1. Basic Usage Example:")
    anyio.run(basic_example)

    print("\n" + "=" * 50)
    print("2. Listing Example:")
    anyio.run(listing_example)

    print("\n🎉 Examples completed!")
