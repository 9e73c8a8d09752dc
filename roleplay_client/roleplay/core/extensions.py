"""
Flask 扩展实例统一管理：
- db: SQLAlchemy（本地权威服务的存储）
- migrate: Flask-Migrate
- jwt: Flask-JWT-Extended（调用者身份）
"""

from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate
from flask_jwt_extended import JWTManager

db = SQLAlchemy()
migrate = Migrate()
jwt = JWTManager()
