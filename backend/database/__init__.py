from .connection import get_db, engine, AsyncSessionLocal, init_db, ping_db, close_db, Base
from .models import SqlUserDB, SqlCommentDB
from .mongo import get_mongo_db, init_mongo, ping_mongo, close_mongo

__all__ = [
    'get_db', 'engine', 'AsyncSessionLocal', 'init_db', 'ping_db', 'close_db', 'Base',
    'SqlUserDB', 'SqlCommentDB',
    'get_mongo_db', 'init_mongo', 'ping_mongo', 'close_mongo',
]
