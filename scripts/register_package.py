"""
Package Registration Script

Registers an uploaded SCORM package (ZIP archive or extracted directory) for
a content item so the launch endpoint can find it.

Usage:
    python -m scripts.register_package book b-101 course-7 uploads/books/b-101.zip
    python -m scripts.register_package --list
"""
import argparse
import asyncio

from scorm_bridge.db.config import SessionLocal, close_db, init_db
from scorm_bridge.models.progress import CONTENT_TYPES
from scorm_bridge.repositories.package_repo import PackageRepository
from scorm_bridge.services.archive import remove_extraction
from scorm_bridge.services.package_resolver import PackageResolver
from scorm_bridge.utils.settings import get_settings


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description=__doc__.split("\n\n")[1])
    parser.add_argument("content_type", nargs="?", choices=CONTENT_TYPES)
    parser.add_argument("content_id", nargs="?")
    parser.add_argument("course_id", nargs="?")
    parser.add_argument(
        "source_path", nargs="?",
        help="ZIP archive or directory, absolute or relative to UPLOAD_ROOT",
    )
    parser.add_argument("--title", default=None)
    parser.add_argument(
        "--reset", action="store_true",
        help="Drop a previous extraction so the next launch unpacks the new archive",
    )
    parser.add_argument("--list", action="store_true", help="List registered packages")
    return parser


async def register_package(args: argparse.Namespace) -> None:
    await init_db()
    async with SessionLocal() as session:
        repo = PackageRepository(session)

        if args.list:
            for record in await repo.list():
                print(
                    f"{record.content_type}/{record.content_id} "
                    f"course={record.course_id} source={record.source_path}"
                )
            return

        record = await repo.register(
            args.content_id,
            args.content_type,
            args.course_id,
            args.source_path,
            title=args.title,
        )
        print(f"Registered {record.content_type}/{record.content_id} -> {record.source_path}")

    if args.reset:
        resolver = PackageResolver(get_settings().upload_root)
        target = resolver.extraction_dir(args.content_type, args.content_id)
        if remove_extraction(target):
            print(f"Removed previous extraction {target}")


async def main() -> None:
    parser = build_parser()
    args = parser.parse_args()
    if not args.list and not all(
        (args.content_type, args.content_id, args.course_id, args.source_path)
    ):
        parser.error("content_type, content_id, course_id and source_path are required")
    try:
        await register_package(args)
    finally:
        await close_db()


if __name__ == "__main__":
    asyncio.run(main())
