import logging
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.exc import SQLAlchemyError

from backend.core import config
from backend.core.errors import register_exception_handlers
from backend.core.logging_config import setup_logging
from backend.core.rate_limit import general_limiter
from backend.database import init_db
from backend.routes import auth_routes, category_routes, question_routes

logger = logging.getLogger(__name__)


def initialize_database() -> None:
    try:
        init_db()
    except SQLAlchemyError:
        logger.exception('Database initialization failed. Check DATABASE_URL and database credentials.')


@asynccontextmanager
async def lifespan(_app: FastAPI):
    initialize_database()
    yield


def create_app() -> FastAPI:
    setup_logging()
    config.validate_runtime_config()

    app = FastAPI(title='Interview Questions API', lifespan=lifespan)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=['*'],
        allow_headers=['*'],
    )

    register_exception_handlers(app)

    @app.get('/')
    def root():
        return {'success': True, 'message': 'Interview Questions API Running'}

    api_limits = [Depends(general_limiter)]
    app.include_router(auth_routes.router, prefix='/api/auth', dependencies=api_limits)
    app.include_router(question_routes.router, prefix='/api/questions', dependencies=api_limits)
    app.include_router(category_routes.router, prefix='/api/categories', dependencies=api_limits)

    return app


app = create_app()
