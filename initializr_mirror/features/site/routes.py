"""
Site routes: /about and /robots.txt.
"""

from flask import Response

from initializr_mirror.utils.content import t

from .blueprint import bp

TEXT_PLAIN = "text/plain; charset=utf-8"


@bp.route("/about")
def about():
    """Who runs this mirror and why."""
    return Response(t("about.body", default=""), content_type=TEXT_PLAIN)


@bp.route("/robots.txt")
def robots():
    return Response(t("robots.body", default="User-agent: *"), content_type=TEXT_PLAIN)
