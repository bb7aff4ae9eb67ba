from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate
from redis import Redis


class RedisStore:
    def __init__(self):
        self.redis = None

    def init_app(self, app):
        try:
            # from_url does not connect; the first command does
            self.redis = Redis.from_url(app.config.get("REDIS_URL"))
        except Exception:
            # a malformed URL leaves the store unset; callers treat that as
            # an unavailable queue and fall back to synchronous processing
            app.logger.exception('Redis init failed, retry queue disabled')
            self.redis = None
        app.extensions['redis_store'] = self


db = SQLAlchemy()
migrate = Migrate()
redis_store = RedisStore()
