from flask import Flask
from config import (
    DevelopmentConfig,
    TestingConfig,
    ProductionConfig,
)
from roleplay.core.extensions import db, migrate, jwt
from roleplay.core.entity_access import EntityAccess
from roleplay.core.errors import register_error_handlers
from flasgger import Swagger
from dotenv import load_dotenv

# 导入所有模型以确保它们被注册到SQLAlchemy元数据中
from roleplay.models.profiles import (
    UserProfileRecord,
    UserRoleRecord,
    CharacterProfileRecord,
)
from roleplay.models.servers import (
    ServerRecord,
    ServerMembershipRecord,
    RoomRecord,
    RoomMemberRecord,
    RoleplayPostRecord,
)

# 注册蓝图
from roleplay.blueprints.auth import auth_bp
from roleplay.blueprints.profiles import profiles_bp
from roleplay.blueprints.servers import servers_bp
from roleplay.blueprints.rooms import rooms_bp
from roleplay.blueprints.characters import characters_bp

# 加载.env文件
load_dotenv()

swagger_template = {
    "swagger": "2.0",
    "info": {
        "title": "Roleplay Hub API",
        "description": "角色扮演社区客户端接口文档：星球、房间、帖子、角色卡与用户资料。",
        "version": "1.0.0",
    },
    "basePath": "/api",
    "schemes": ["http", "https"],
    "securityDefinitions": {
        "Bearer": {
            "type": "apiKey",
            "name": "Authorization",
            "in": "header",
            "description": "JWT认证，格式: Bearer <token>",
        }
    },
}

swagger_config = {
    "headers": [],
    "specs": [
        {
            "endpoint": "apispec",
            "route": "/apispec.json",
            "rule_filter": lambda rule: True,  # 所有路由
            "model_filter": lambda tag: True,  # 所有模型
        }
    ],
    "static_url_path": "/flasgger_static",
    "swagger_ui": True,
    "specs_route": "/apidocs/",  # 仅开发环境下生效
}

entity_access = EntityAccess()


def create_app(config_name="development"):
    """应用工厂函数"""
    app = Flask(__name__)

    # 根据配置名称选择配置类
    if config_name == "testing":
        config_class = TestingConfig
    elif config_name == "production":
        config_class = ProductionConfig
    else:
        config_class = DevelopmentConfig

    app.config.from_object(config_class)
    db.init_app(app)
    migrate.init_app(app, db)
    jwt.init_app(app)

    # 注册蓝图
    app.register_blueprint(auth_bp, url_prefix="/api")
    app.register_blueprint(profiles_bp, url_prefix="/api")
    app.register_blueprint(servers_bp, url_prefix="/api")
    app.register_blueprint(rooms_bp, url_prefix="/api")
    app.register_blueprint(characters_bp, url_prefix="/api")

    register_error_handlers(app)

    # 实体访问层：传输层 + 查询缓存
    entity_access.init_app(app)

    if config_name == "development" and app.config["ENTITY_TRANSPORT"] == "local":
        with app.app_context():
            db.create_all()

    # 仅开发/测试环境下启用默认Swagger UI
    if config_name in ("development", "testing"):
        Swagger(app, template=swagger_template, config=swagger_config)
    else:
        # 生产环境禁用默认Swagger UI
        Swagger(
            app, template=swagger_template, config={"swagger_ui": False, "specs": []}
        )

    return app
