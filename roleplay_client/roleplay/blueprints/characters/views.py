from . import characters_bp
from flask import request, jsonify
from roleplay.core.entity_access import get_entity_access
from roleplay.core.errors import ValidationFailed
from roleplay.core.identity import principal_of, require_caller, resolve_caller
from roleplay.core.validation import json_body


def _character_fields(data):
    return {
        "name": data.get("name"),
        "description": data.get("description"),
        "appearance": data.get("appearance"),
        "avatar_image_url": data.get("avatar_image_url"),
        "server_id": data.get("server_id"),
    }


@characters_bp.route("/characters", methods=["GET"])
def list_characters():
    """
    获取角色卡列表
    ---
    description: |
      owner 默认为当前调用者。指定 server_id 时只返回该星球可用的角色卡
      （未限定星球的角色卡在所有星球可用）；不指定时返回全部角色卡。
    tags:
      - Characters
    security:
      - Bearer: []
    parameters:
      - in: query
        name: owner
        type: string
        description: 角色卡所有者
      - in: query
        name: server_id
        type: string
        description: 星球作用域
    responses:
      200:
        description: 角色卡列表
      400:
        description: 匿名访问且未指定 owner
    """
    caller = resolve_caller()
    owner = request.args.get("owner") or principal_of(caller)
    if owner is None:
        raise ValidationFailed("角色卡所有者必填", field="owner")
    server_id = request.args.get("server_id") or None
    characters = get_entity_access().list_character_profiles(
        caller, owner, server_id=server_id
    )
    return jsonify(
        {
            "owner": owner,
            "server_id": server_id,
            "characters": [c.model_dump(mode="json") for c in characters],
        }
    )


@characters_bp.route("/characters", methods=["POST"])
def create_character():
    """
    创建角色卡
    ---
    tags:
      - Characters
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
              example: 艾琳
            description:
              type: string
            appearance:
              type: string
            avatar_image_url:
              type: string
            server_id:
              type: string
              description: 为空表示在所有星球可用
    responses:
      201:
        description: 角色卡创建成功
      400:
        description: 参数错误
      401:
        description: 未登录
    """
    data = json_body()
    character = get_entity_access().create_character_profile(
        resolve_caller(), **_character_fields(data)
    )
    return (
        jsonify(
            {"message": "角色卡创建成功", "character": character.model_dump(mode="json")}
        ),
        201,
    )


@characters_bp.route("/characters/<character_id>", methods=["GET"])
def get_character(character_id):
    """
    获取角色卡详情
    ---
    tags:
      - Characters
    parameters:
      - in: path
        name: character_id
        type: string
        required: true
    responses:
      200:
        description: 角色卡详情，can_edit 表示调用者是否为所有者
      404:
        description: 角色卡不存在
    """
    caller = resolve_caller()
    character = get_entity_access().get_character_profile(caller, character_id)
    return jsonify(
        {
            "character": character.model_dump(mode="json"),
            "can_edit": principal_of(caller) == character.owner,
        }
    )


@characters_bp.route("/characters/<character_id>", methods=["PUT"])
def edit_character(character_id):
    """
    编辑角色卡（仅所有者）
    ---
    tags:
      - Characters
    security:
      - Bearer: []
    parameters:
      - in: path
        name: character_id
        type: string
        required: true
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
            description:
              type: string
            appearance:
              type: string
            avatar_image_url:
              type: string
            server_id:
              type: string
    responses:
      200:
        description: 更新成功
      400:
        description: 参数错误
      401:
        description: 未登录
      404:
        description: 角色卡不存在
    """
    caller = require_caller(resolve_caller())
    data = json_body()
    character = get_entity_access().edit_character_profile(
        caller, character_id, **_character_fields(data)
    )
    return jsonify(
        {"message": "角色卡已更新", "character": character.model_dump(mode="json")}
    )
