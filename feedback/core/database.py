from fastapi import Request
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker, declarative_base
from sqlalchemy.pool import StaticPool

Base = declarative_base()


def enable_foreign_keys(dbapi_connection, connection_record):
    # SQLite n'applique les ON DELETE CASCADE de issue_tags qu'avec ce pragma
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def make_engine(database_url: str):
    """Engine partagé par le store et le reconciler"""
    if not database_url.startswith("sqlite"):
        return create_engine(database_url, echo=False)

    connect_args = {"check_same_thread": False}
    # base en mémoire : une seule connexion sinon chaque connexion a sa propre base
    if database_url in ("sqlite://", "sqlite:///:memory:"):
        engine = create_engine(database_url, connect_args=connect_args, poolclass=StaticPool, echo=False)
    else:
        engine = create_engine(database_url, connect_args=connect_args, echo=False)
    event.listen(engine, "connect", enable_foreign_keys)
    return engine


def make_session_factory(engine):
    # autoflush pour que les count/query voient les objets pas encore commit
    return sessionmaker(autocommit=False, autoflush=True, expire_on_commit=False, bind=engine)


def get_store(request: Request):
    """Dépendance store (construit dans le lifespan de l'app)"""
    return request.app.state.store


def get_awards(request: Request):
    return request.app.state.awards


def get_reconciler(request: Request):
    return request.app.state.reconciler


def get_entitlements(request: Request):
    return request.app.state.entitlements
