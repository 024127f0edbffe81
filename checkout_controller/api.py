"""
HTTP surface of the checkout controller.

Starts and follows checkout runs, answers their pending prompts, lists
workspace projects and writes diagnostic bundles. Run it with:

    python -m checkout_controller.api
"""

import logging
import os
from pathlib import Path
from typing import List, Optional

from fastapi import FastAPI, HTTPException
from pydantic import BaseModel, Field

from . import __version__
from .config import ControllerSettings, load_settings
from .controller import CheckoutController
from .diagnostics import Data
from .errors import BundleError
from .interaction import UnknownPromptError

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

logger = logging.getLogger("checkout_api")


def setup_logging(settings: ControllerSettings) -> None:
    """Console logging, plus the configured log file if any."""
    logging.basicConfig(level=logging.INFO, format=LOG_FORMAT)
    if settings.log_file:
        Path(settings.log_file).parent.mkdir(parents=True, exist_ok=True)
        handler = logging.FileHandler(settings.log_file)
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        logging.getLogger().addHandler(handler)


# -----------------------------------------------------------------------------
# Request Models
# -----------------------------------------------------------------------------
class CheckoutRequestModel(BaseModel):
    """Request model for starting a checkout run."""
    locations: List[str] = Field(..., min_length=1, description="Remote source locations")
    destination: Optional[str] = None
    import_all_projects: bool = False


class PromptAnswerModel(BaseModel):
    """Answer to a pending prompt."""
    proceed: bool
    selected: Optional[List[str]] = Field(default=None, description="Manifest or folder paths to import")
    imported: int = 0


class DiagnosticsRequestModel(BaseModel):
    bundle_file: Optional[str] = None
    data: Optional[List[Data]] = None


# -----------------------------------------------------------------------------
# FastAPI Application
# -----------------------------------------------------------------------------
def create_app(controller: Optional[CheckoutController] = None) -> FastAPI:
    controller = controller or CheckoutController(load_settings())

    app = FastAPI(
        title="Checkout Controller",
        description="Check out remote sources and import the projects found in them",
        version=__version__,
    )
    app.state.controller = controller

    @app.on_event("shutdown")
    async def shutdown():
        await controller.shutdown()

    @app.get("/health")
    async def health_check():
        """Health check endpoint."""
        return {
            "service": "Checkout Controller",
            "status": "healthy",
            "version": __version__,
            "runs": len(controller.list_runs()),
        }

    # -------------------------------------------------------------------------
    # Checkouts
    # -------------------------------------------------------------------------
    @app.post("/checkouts", status_code=202)
    async def start_checkout(request: CheckoutRequestModel):
        run = controller.start_checkout(
            request.locations,
            destination=Path(request.destination) if request.destination else None,
            import_all_projects=request.import_all_projects,
        )
        return run.to_dict()

    @app.get("/checkouts")
    async def list_checkouts():
        return {"runs": [run.to_dict() for run in controller.list_runs()]}

    @app.get("/checkouts/{run_id}")
    async def get_checkout(run_id: str):
        run = controller.get_run(run_id)
        if run is None:
            raise HTTPException(status_code=404, detail=f"Run '{run_id}' not found")
        data = run.to_dict()
        data["prompts"] = [p.to_dict() for p in controller.prompts.pending(run_id)]
        return data

    @app.post("/checkouts/{run_id}/cancel")
    async def cancel_checkout(run_id: str):
        run = controller.cancel(run_id)
        if run is None:
            raise HTTPException(status_code=404, detail=f"Run '{run_id}' not found")
        return {"run_id": run_id, "cancel_requested": True, "state": run.state.value}

    # -------------------------------------------------------------------------
    # Prompts
    # -------------------------------------------------------------------------
    @app.get("/prompts")
    async def list_prompts(run_id: Optional[str] = None):
        return {"prompts": [p.to_dict() for p in controller.prompts.pending(run_id)]}

    @app.post("/prompts/{prompt_id}/answer")
    async def answer_prompt(prompt_id: str, answer: PromptAnswerModel):
        try:
            prompt = controller.prompts.answer(prompt_id, answer.model_dump())
        except UnknownPromptError:
            raise HTTPException(status_code=404, detail=f"Prompt '{prompt_id}' not found")
        return {"prompt_id": prompt.prompt_id, "run_id": prompt.run_id, "answered": True}

    # -------------------------------------------------------------------------
    # Workspace and Diagnostics
    # -------------------------------------------------------------------------
    @app.get("/projects")
    async def list_projects():
        return {"projects": [p.to_dict() for p in controller.workspace.list_projects()]}

    @app.post("/diagnostics")
    async def gather_diagnostics(request: Optional[DiagnosticsRequestModel] = None):
        request = request or DiagnosticsRequestModel()
        try:
            report = controller.gather_diagnostics(
                Path(request.bundle_file) if request.bundle_file else None,
                request.data,
            )
        except BundleError as e:
            logger.error(f"Diagnostic bundle failed: {e}")
            raise HTTPException(status_code=500, detail=e.to_dict())
        return report.to_dict()

    return app


# -----------------------------------------------------------------------------
# Main Entry Point
# -----------------------------------------------------------------------------
if __name__ == "__main__":
    import uvicorn

    settings = load_settings(os.getenv("CHECKOUT_SETTINGS"))
    setup_logging(settings)
    uvicorn.run(create_app(CheckoutController(settings)), host="0.0.0.0", port=int(os.getenv("PORT", "8000")))
