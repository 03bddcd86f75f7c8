from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from codelens.core.database import dispose_engine
from codelens.core.dependencies import close_state, init_state
from codelens.core.telemetry import setup_telemetry
from codelens.modules.commit_analysis.analysis_router import (
    router as commit_analysis_router,
)
from codelens.modules.utils.logger import configure_logging, setup_logger

logger = setup_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    await close_state(app.state)
    await dispose_engine()


class MainApp:
    def __init__(self):
        load_dotenv(override=True)
        configure_logging()
        setup_telemetry()
        self.app = FastAPI(title="CodeLens", lifespan=lifespan)
        self.setup_cors()
        self.initialize_state()
        self.include_routers()

    def setup_cors(self):
        origins = ["*"]
        self.app.add_middleware(
            CORSMiddleware,
            allow_origins=origins,
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    def initialize_state(self):
        init_state(self.app.state)

    def include_routers(self):
        self.app.include_router(
            commit_analysis_router, prefix="/api/v1", tags=["Commit Analysis"]
        )

    def add_health_check(self):
        @self.app.get("/health", tags=["Health"])
        def health_check():
            return {"status": "ok"}

    def run(self):
        self.add_health_check()
        return self.app


# Create an instance of MainApp and run it
main_app = MainApp()
app = main_app.run()
