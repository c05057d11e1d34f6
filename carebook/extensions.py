from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate
from flask_jwt_extended import JWTManager

# Shared database, migration and token-verification instances
db = SQLAlchemy()
migrate = Migrate()
jwt = JWTManager()
