"""
Clear Project Script

This script deletes ALL entities and relations of one project from the
configured storage backend (KG_STORAGE_TYPE / KG_CONNECTION_STRING).
Use with caution - this action is irreversible!

Usage:
    python -m scripts.clear_project --project demo
    python -m scripts.clear_project --project demo --confirm  # Skip confirmation prompt
"""

import argparse
import sys

from dotenv import load_dotenv
load_dotenv()

from kgraph.config import load_settings
from kgraph.errors import KnowledgeGraphError
from kgraph.models.graph import KnowledgeGraph, resolve_project
from kgraph.storage import StorageProvider, create_storage


def clear_project(storage: StorageProvider, project: str) -> tuple[int, int]:
    """
    Delete every entity and relation of a project.

    Args:
        storage: Initialized storage provider
        project: Project to clear

    Returns:
        Tuple of (entities_deleted, relations_deleted)
    """
    entity_count = storage.count_entities(project)
    relation_count = storage.count_relations(project)

    storage.save_graph(KnowledgeGraph(), project)

    print(f"\n✅ Deletion complete!")
    print(f"   Entities deleted: {entity_count:,}")
    print(f"   Relations deleted: {relation_count:,}")
    print(f"   Remaining entities: {storage.count_entities(project):,}")
    return entity_count, relation_count


def main():
    parser = argparse.ArgumentParser(description="Clear all data of one kgraph project")
    parser.add_argument(
        "--project", "-p",
        default=None,
        help="Project to clear (default: KG_DEFAULT_PROJECT)"
    )
    parser.add_argument(
        "--confirm", "-y",
        action="store_true",
        help="Skip confirmation prompt"
    )
    args = parser.parse_args()

    try:
        settings = load_settings()
        project = resolve_project(args.project, settings.default_project)
        storage = create_storage(settings)
        storage.initialize()
    except KnowledgeGraphError as e:
        print(f"❌ {e}")
        sys.exit(1)

    print("=" * 60)
    print("🗄️  kgraph Project Cleaner")
    print("=" * 60)
    print(f"\nStorage: {settings.storage_type.value}")
    print(f"Project: {project}")

    try:
        entity_count = storage.count_entities(project)
        relation_count = storage.count_relations(project)

        if entity_count == 0 and relation_count == 0:
            print("\n✅ Project is already empty!")
            return

        if not args.confirm:
            print(f"\n⚠️  WARNING: This will delete:")
            print(f"   • {entity_count:,} entities")
            print(f"   • {relation_count:,} relations")
            print(f"\n   This action is IRREVERSIBLE!")

            response = input("\n   Type 'DELETE' to confirm: ").strip()
            if response != "DELETE":
                print("\n❌ Aborted. No data was deleted.")
                sys.exit(0)

        clear_project(storage, project)

    finally:
        storage.close()
        print("\n🔌 Connection closed")


if __name__ == "__main__":
    main()
