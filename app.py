# app.py
import io
import logging
import zipfile
from pathlib import Path

from flask import Flask, abort, jsonify, send_file
from sqlalchemy.orm import selectinload

from config import Config
from models import (
    Base, ensure_sqlite_dir, make_engine, make_session_factory,
    CompanySettings, FeedPost, Project, POST_TYPES,
)
from pdf_service import generate_post_pdf, unique_filename

logger = logging.getLogger(__name__)


# -----------------------------
# Helpers
# -----------------------------
def _ensure_dirs(database_url: str):
    ensure_sqlite_dir(database_url)
    Path(Config.EXPORTS_DIR).mkdir(parents=True, exist_ok=True)


def _company_logo_url(session) -> str | None:
    settings = session.query(CompanySettings).order_by(CompanySettings.id.asc()).first()
    return (settings.logo_url or "").strip() or None if settings else None


def _post_or_404(session, project_id: int, post_id: int) -> FeedPost:
    post = (
        session.query(FeedPost)
        .filter(FeedPost.id == post_id, FeedPost.project_id == project_id)
        .first()
    )
    if not post or not post.has_document():
        abort(404)
    return post


# -----------------------------
# App factory
# -----------------------------
def create_app(database_url: str | None = None):
    database_url = database_url or Config.SQLALCHEMY_DATABASE_URI
    _ensure_dirs(database_url)

    app = Flask(__name__)
    app.config.from_object(Config)

    engine = make_engine(database_url, echo=Config.SQLALCHEMY_ECHO)
    Base.metadata.create_all(engine)

    SessionLocal = make_session_factory(engine)
    app.config["SESSION_FACTORY"] = SessionLocal

    def db_session():
        return SessionLocal()

    @app.route("/health")
    def health():
        return jsonify({"status": "ok"})

    # -----------------------------
    # PDF routes
    # -----------------------------
    @app.route("/projects/<int:project_id>/posts/<int:post_id>/pdf")
    def post_pdf_download(project_id, post_id):
        with db_session() as s:
            post = _post_or_404(s, project_id, post_id)
            filename, data = generate_post_pdf(post, _company_logo_url(s))

        logger.info("PDF download %s (project=%s post=%s)", filename, project_id, post_id)
        return send_file(
            io.BytesIO(data),
            as_attachment=True,
            download_name=filename,
            mimetype="application/pdf"
        )

    @app.route("/projects/<int:project_id>/pdfs/download_all")
    def project_pdfs_download_all(project_id):
        with db_session() as s:
            project = (
                s.query(Project)
                .options(selectinload(Project.posts))
                .filter(Project.id == project_id)
                .first()
            )
            if not project:
                abort(404)

            logo_url = _company_logo_url(s)
            mem = io.BytesIO()
            used = set()
            with zipfile.ZipFile(mem, "w", zipfile.ZIP_DEFLATED) as z:
                for post in project.posts:
                    if post.post_type not in POST_TYPES:
                        continue
                    filename, data = generate_post_pdf(post, logo_url)
                    # two drafts of the same type/name would collide
                    filename = unique_filename(filename, post.id, used)
                    z.writestr(filename, data)

        mem.seek(0)
        return send_file(mem, as_attachment=True, download_name=f"project-{project_id}-documents.zip")

    return app


if __name__ == "__main__":
    logging.basicConfig(
        level=getattr(logging, Config.LOG_LEVEL.upper(), logging.INFO),
        format="[%(asctime)s] %(levelname)-8s %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    app = create_app()
    app.run(debug=True)
