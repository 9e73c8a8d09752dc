from . import rooms_bp
from flask import jsonify
from roleplay.core.authorization import can_delete_post, evaluate_access
from roleplay.core.community_service import get_community_service
from roleplay.core.entity_access import get_entity_access
from roleplay.core.identity import principal_of, resolve_caller
from roleplay.core.validation import json_body


@rooms_bp.route("/servers/<server_id>/rooms", methods=["GET"])
def list_rooms(server_id):
    """
    获取星球内的房间列表
    ---
    tags:
      - Rooms
    parameters:
      - in: path
        name: server_id
        type: string
        required: true
    responses:
      200:
        description: 房间列表
      404:
        description: 星球不存在
    """
    rooms = get_entity_access().list_rooms(resolve_caller(), server_id)
    return jsonify(
        {
            "rooms": [
                {
                    "id": room.id,
                    "name": room.name,
                    "description": room.description,
                    "creator": room.creator,
                    "post_count": len(room.roleplay_posts),
                }
                for room in rooms
            ]
        }
    )


@rooms_bp.route("/servers/<server_id>/rooms", methods=["POST"])
def create_room(server_id):
    """
    创建房间（仅所有者/管理员）
    ---
    tags:
      - Rooms
    security:
      - Bearer: []
    parameters:
      - in: path
        name: server_id
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
              example: 酒馆
            description:
              type: string
    responses:
      201:
        description: 房间创建成功
      400:
        description: 参数错误
      401:
        description: 未登录
      403:
        description: 权限不足
    """
    data = json_body()
    room_id = get_community_service().create_room(
        resolve_caller(),
        server_id,
        name=data.get("name"),
        description=data.get("description"),
    )
    return jsonify({"message": "房间创建成功", "room_id": room_id}), 201


@rooms_bp.route("/servers/<server_id>/rooms/<room_id>", methods=["GET"])
def get_room(server_id, room_id):
    """
    获取房间详情（帖子按ID升序）
    ---
    tags:
      - Rooms
    parameters:
      - in: path
        name: server_id
        type: string
        required: true
      - in: path
        name: room_id
        type: string
        required: true
    responses:
      200:
        description: 房间详情与调用者授权结论
      404:
        description: 星球或房间不存在
    """
    caller = resolve_caller()
    entity_access = get_entity_access()
    server = entity_access.get_server(caller, server_id)
    room = entity_access.get_room(caller, server_id, room_id)
    return jsonify(
        {
            "room": room.model_dump(mode="json"),
            "viewer": evaluate_access(server, principal_of(caller)).to_dict(),
        }
    )


@rooms_bp.route("/servers/<server_id>/rooms/<room_id>/posts", methods=["GET"])
def list_posts(server_id, room_id):
    """
    获取房间内的帖子（按ID升序）
    ---
    tags:
      - Posts
    parameters:
      - in: path
        name: server_id
        type: string
        required: true
      - in: path
        name: room_id
        type: string
        required: true
    responses:
      200:
        description: 帖子列表，can_delete 表示调用者能否删除该帖子
    """
    caller = resolve_caller()
    entity_access = get_entity_access()
    server = entity_access.get_server(caller, server_id)
    posts = entity_access.list_roleplay_posts(caller, server_id, room_id)
    principal = principal_of(caller)
    return jsonify(
        {
            "posts": [
                dict(
                    post.model_dump(mode="json"),
                    can_delete=can_delete_post(server, principal, post),
                )
                for post in posts
            ]
        }
    )


@rooms_bp.route("/servers/<server_id>/rooms/<room_id>/posts", methods=["POST"])
def create_post(server_id, room_id):
    """
    在房间内发帖（仅星球成员）
    ---
    tags:
      - Posts
    security:
      - Bearer: []
    parameters:
      - in: path
        name: server_id
        type: string
        required: true
      - in: path
        name: room_id
        type: string
        required: true
      - in: body
        name: body
        required: true
        schema:
          type: object
          required:
            - content
          properties:
            content:
              type: string
              example: 推开酒馆的门，风铃轻响。
    responses:
      201:
        description: 发帖成功，返回权威服务分配的帖子ID
      400:
        description: 内容为空或超长
      401:
        description: 未登录
      403:
        description: 非星球成员
    """
    data = json_body()
    post_id = get_community_service().create_post(
        resolve_caller(), server_id, room_id, data.get("content")
    )
    return jsonify({"message": "发帖成功", "post_id": post_id}), 201


@rooms_bp.route(
    "/servers/<server_id>/rooms/<room_id>/posts/<int:post_id>", methods=["GET"]
)
def get_post(server_id, room_id, post_id):
    """
    获取单个帖子
    ---
    tags:
      - Posts
    parameters:
      - in: path
        name: server_id
        type: string
        required: true
      - in: path
        name: room_id
        type: string
        required: true
      - in: path
        name: post_id
        type: integer
        required: true
    responses:
      200:
        description: 帖子详情
      404:
        description: 帖子不存在
    """
    post = get_entity_access().get_roleplay_post(
        resolve_caller(), server_id, room_id, post_id
    )
    return jsonify({"post": post.model_dump(mode="json")})


@rooms_bp.route(
    "/servers/<server_id>/rooms/<room_id>/posts/<int:post_id>", methods=["DELETE"]
)
def delete_post(server_id, room_id, post_id):
    """
    删除帖子（仅所有者/管理员）
    ---
    tags:
      - Posts
    security:
      - Bearer: []
    parameters:
      - in: path
        name: server_id
        type: string
        required: true
      - in: path
        name: room_id
        type: string
        required: true
      - in: path
        name: post_id
        type: integer
        required: true
    responses:
      200:
        description: 帖子已删除
      401:
        description: 未登录
      403:
        description: 权限不足
      404:
        description: 帖子不存在
    """
    get_community_service().delete_post(resolve_caller(), server_id, room_id, post_id)
    return jsonify({"message": "帖子已删除", "post_id": post_id})
