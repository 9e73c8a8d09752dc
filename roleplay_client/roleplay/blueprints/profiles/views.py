from . import profiles_bp
from flask import jsonify
from roleplay.core.entity_access import get_entity_access
from roleplay.core.identity import require_caller, resolve_caller
from roleplay.core.validation import json_body


@profiles_bp.route("/profile", methods=["GET"])
def get_own_profile():
    """
    获取当前用户资料
    ---
    tags:
      - Profiles
    security:
      - Bearer: []
    responses:
      200:
        description: 用户资料，尚未创建时 profile 为 null（前端据此进入资料设置流程）
      401:
        description: 未登录
    """
    caller = require_caller(resolve_caller())
    profile = get_entity_access().get_caller_user_profile(caller)
    return jsonify(
        {
            "principal": caller.principal,
            "profile": profile.model_dump() if profile else None,
            "needs_setup": profile is None,
        }
    )


@profiles_bp.route("/profile", methods=["PUT"])
def save_own_profile():
    """
    保存当前用户资料（整体覆盖）
    ---
    tags:
      - Profiles
    security:
      - Bearer: []
    parameters:
      - in: body
        name: body
        required: true
        schema:
          type: object
          required:
            - name
          properties:
            name:
              type: string
              example: 月下旅人
            bio:
              type: string
            avatar_url:
              type: string
    responses:
      200:
        description: 保存成功
      400:
        description: 参数错误
      401:
        description: 未登录
    """
    data = json_body()
    profile = get_entity_access().save_caller_user_profile(
        resolve_caller(),
        name=data.get("name"),
        bio=data.get("bio"),
        avatar_url=data.get("avatar_url"),
    )
    return jsonify({"message": "资料保存成功", "profile": profile.model_dump()})


@profiles_bp.route("/users/<principal>/profile", methods=["GET"])
def get_user_profile(principal):
    """
    获取指定用户的资料
    ---
    tags:
      - Profiles
    parameters:
      - in: path
        name: principal
        type: string
        required: true
    responses:
      200:
        description: 用户资料
      404:
        description: 用户尚未创建资料
    """
    profile = get_entity_access().get_user_profile(resolve_caller(), principal)
    if profile is None:
        return jsonify({"error": "用户资料不存在"}), 404
    return jsonify({"principal": principal, "profile": profile.model_dump()})
