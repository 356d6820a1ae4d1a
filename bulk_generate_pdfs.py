# bulk_generate_pdfs.py
import argparse
import logging
from pathlib import Path

from config import Config
from models import Base, make_engine, make_session_factory, CompanySettings, FeedPost, POST_TYPES
from pdf_service import generate_post_pdf, unique_filename


def main(argv=None):
    parser = argparse.ArgumentParser(description="Export printable documents (timecards, receipts, reports) to disk.")
    parser.add_argument("--project-id", type=int, default=None, help="Only export posts of one project.")
    parser.add_argument("--type", choices=POST_TYPES, default=None, help="Only export one document type.")
    parser.add_argument("--out", type=str, default=Config.EXPORTS_DIR, help="Target directory.")
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=getattr(logging, Config.LOG_LEVEL.upper(), logging.INFO),
        format="[%(asctime)s] %(levelname)-8s %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    engine = make_engine(Config.SQLALCHEMY_DATABASE_URI, echo=Config.SQLALCHEMY_ECHO)
    Base.metadata.create_all(engine)
    SessionLocal = make_session_factory(engine)

    with SessionLocal() as s:
        q = s.query(FeedPost).filter(FeedPost.post_type.in_(POST_TYPES)).order_by(FeedPost.created_at.asc(), FeedPost.id.asc())
        if args.project_id is not None:
            q = q.filter(FeedPost.project_id == args.project_id)
        if args.type:
            q = q.filter(FeedPost.post_type == args.type)
        posts = q.all()

        if not posts:
            print("No documents found for the given filter.")
            return

        settings = s.query(CompanySettings).order_by(CompanySettings.id.asc()).first()
        logo_url = (settings.logo_url or "").strip() or None if settings else None

        total = len(posts)
        generated = 0
        failed = 0
        used: dict[Path, set] = {}

        for i, post in enumerate(posts, start=1):
            try:
                filename, data = generate_post_pdf(post, logo_url)
                out_dir = Path(args.out) / f"project_{post.project_id}"
                # same name and date would overwrite an earlier file
                filename = unique_filename(filename, post.id, used.setdefault(out_dir, set()))
                out_dir.mkdir(parents=True, exist_ok=True)
                path = out_dir / filename
                path.write_bytes(data)
                generated += 1
                print(f"[{i}/{total}] DONE  post {post.id} ({post.post_type}) -> {path}")

            except Exception as e:
                failed += 1
                print(f"[{i}/{total}] FAIL  post {post.id} ({post.post_type})  ({e})")

        print("\n✅ Bulk PDF export complete.")
        print(f"Generated: {generated}")
        print(f"Failed:    {failed}")
        print(f"Exports:   {args.out}")


if __name__ == "__main__":
    main()
