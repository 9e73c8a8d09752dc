from . import auth_bp
from flask import current_app, jsonify
from flask_jwt_extended import create_access_token
from roleplay.core.authorization import canonical_identity
from roleplay.core.entity_access import get_entity_access
from roleplay.core.identity import resolve_caller
from roleplay.core.validation import json_body


@auth_bp.route("/auth/me", methods=["GET"])
def me():
    """
    获取当前调用者身份
    ---
    tags:
      - Auth
    security:
      - Bearer: []
    responses:
      200:
        description: 当前调用者，匿名访问时 principal 为 null
        schema:
          type: object
          properties:
            principal:
              type: string
            authenticated:
              type: boolean
            profile:
              type: object
    """
    caller = resolve_caller()
    profile = get_entity_access().get_caller_user_profile(caller)
    return jsonify(
        {
            "principal": caller.principal if caller else None,
            "authenticated": caller is not None,
            "profile": profile.model_dump() if profile else None,
        }
    )


@auth_bp.route("/auth/token", methods=["POST"])
def issue_token():
    """
    签发开发用令牌（替代外部身份提供方，仅开发/测试环境）
    ---
    tags:
      - Auth
    parameters:
      - in: body
        name: body
        required: true
        schema:
          type: object
          required:
            - principal
          properties:
            principal:
              type: string
              example: alice
    responses:
      200:
        description: 签发成功
        schema:
          type: object
          properties:
            principal:
              type: string
            access_token:
              type: string
      400:
        description: 参数错误
      404:
        description: 当前环境未启用
    """
    if not current_app.config.get("DEV_TOKEN_ENABLED"):
        return jsonify({"error": "接口不存在"}), 404
    data = json_body()
    principal = canonical_identity(data.get("principal"))
    if principal is None:
        return jsonify({"error": "身份标识必填"}), 400
    access_token = create_access_token(identity=principal)
    return jsonify({"principal": principal, "access_token": access_token})


@auth_bp.route("/auth/role", methods=["GET"])
def caller_role():
    """
    获取当前调用者的全局角色
    ---
    tags:
      - Auth
    security:
      - Bearer: []
    responses:
      200:
        description: 全局角色（admin/user/guest）
    """
    role = get_entity_access().get_caller_user_role(resolve_caller())
    return jsonify({"role": role.value})


@auth_bp.route("/auth/is_admin", methods=["GET"])
def caller_is_admin():
    """
    当前调用者是否为全局管理员
    ---
    tags:
      - Auth
    security:
      - Bearer: []
    responses:
      200:
        description: 查询成功
    """
    return jsonify({"is_admin": get_entity_access().is_caller_admin(resolve_caller())})


@auth_bp.route("/auth/roles", methods=["POST"])
def assign_role():
    """
    为用户分配全局角色（仅管理员）
    ---
    tags:
      - Auth
    security:
      - Bearer: []
    parameters:
      - in: body
        name: body
        required: true
        schema:
          type: object
          required:
            - user_id
            - role
          properties:
            user_id:
              type: string
              example: bob
            role:
              type: string
              enum: [admin, user, guest]
    responses:
      200:
        description: 分配成功
      400:
        description: 参数错误
      401:
        description: 未登录
      502:
        description: 权威服务拒绝（非管理员）
    """
    data = json_body()
    user_id = canonical_identity(data.get("user_id"))
    role = data.get("role")
    if user_id is None or not role:
        return jsonify({"error": "用户和角色必填"}), 400
    if role not in ("admin", "user", "guest"):
        return jsonify({"error": f"未知角色: {role}"}), 400
    get_entity_access().assign_caller_user_role(resolve_caller(), user_id, role)
    return jsonify({"message": "角色分配成功", "user_id": user_id, "role": role})
