from __future__ import annotations

import logging
from pathlib import Path

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import HTMLResponse, Response
from jinja2 import Environment, FileSystemLoader, select_autoescape
from starlette.datastructures import ImmutableMultiDict

from ..config import Settings, get_settings
from ..facade import FacadeQueryFailure, PoolFacade, UnrecognizedAction
from .chart import HEIGHT, WIDTH, InvalidChartSpec, parse_chart_spec, render_bar_chart
from .report import ACTION_CHART, ACTION_STATS, View, build_list, build_stats, resolve_view


logger = logging.getLogger(__name__)

# Jinja2 templates setup
TEMPLATES_DIR = Path(__file__).resolve().parent.parent / "templates"
templates_env = Environment(
    loader=FileSystemLoader(str(TEMPLATES_DIR)),
    autoescape=select_autoescape(["html", "xml"]),
)

router = APIRouter(tags=["Monitor"])

NO_CACHE = {"Cache-Control": "no-cache, no-store", "Pragma": "no-cache"}


def get_facade(request: Request) -> PoolFacade:
    return request.app.state.facade


async def _request_params(request: Request) -> ImmutableMultiDict:
    """Query parameters, plus form fields when the request is a POST."""
    items = list(request.query_params.multi_items())
    if request.method == "POST":
        form = await request.form()
        items += [(k, v) for k, v in form.multi_items() if isinstance(v, str)]
    return ImmutableMultiDict(items)


def _chart_response(params: ImmutableMultiDict) -> Response:
    try:
        spec = parse_chart_spec(params.getlist("c"), params.getlist("l"), params.get("d"))
    except InvalidChartSpec as exc:
        logger.warning("Invalid chart request (%s): %s", exc.reason, exc.message)
        raise HTTPException(
            status_code=400,
            detail={"error": "invalid_chart_spec", "reason": exc.reason, "message": exc.message},
            headers=NO_CACHE,
        )
    return Response(content=render_bar_chart(spec), media_type="image/png", headers=NO_CACHE)


@router.api_route("", methods=["GET", "POST"])
async def monitor(
    request: Request,
    facade: PoolFacade = Depends(get_facade),
    settings: Settings = Depends(get_settings),
):
    """Pool list, pool statistics page, or a bar chart image, by ``action``."""
    params = await _request_params(request)
    action = params.get("action") or ACTION_STATS
    link = request.url.path

    if action == ACTION_CHART:
        return _chart_response(params)

    try:
        resolution = resolve_view(action, params.get("alias"), facade)
        if resolution.view is View.LIST:
            tpl = templates_env.get_template("monitor_list.html")
            context = {"report": build_list(facade, resolution.alias, link)}
        else:
            tpl = templates_env.get_template("monitor_stats.html")
            context = {"report": build_stats(facade, resolution.alias, link)}
    except UnrecognizedAction as exc:
        logger.error(str(exc))
        raise HTTPException(
            status_code=400,
            detail={"error": "unrecognized_action", "action": exc.action, "message": str(exc)},
            headers=NO_CACHE,
        )
    except FacadeQueryFailure:
        logger.exception("Problem querying the pool facade")
        tpl = templates_env.get_template("monitor_error.html")
        html = tpl.render(title=settings.title, link=link, message="Pool information is currently unavailable.")
        return HTMLResponse(content=html, status_code=503, headers=NO_CACHE)

    html = tpl.render(title=settings.title, link=link, chart_width=WIDTH, chart_height=HEIGHT, **context)
    return HTMLResponse(content=html, status_code=200, headers=NO_CACHE)
