from . import servers_bp
from flask import jsonify
from roleplay.core.authorization import evaluate_access
from roleplay.core.community_service import get_community_service
from roleplay.core.entity_access import get_entity_access
from roleplay.core.identity import principal_of, resolve_caller
from roleplay.core.validation import json_body


def _server_summary(server):
    return {
        "id": server.id,
        "name": server.name,
        "description": server.description,
        "banner_image_url": server.banner_image_url,
        "owner": server.owner,
        "member_count": len(server.memberships),
        "room_count": len(server.rooms),
        "post_count": sum(len(room.roleplay_posts) for room in server.rooms),
    }


def _server_fields(data):
    return {
        "name": data.get("name"),
        "description": data.get("description"),
        "banner_image_url": data.get("banner_image_url"),
    }


@servers_bp.route("/servers", methods=["GET"])
def list_servers():
    """
    获取星球列表
    ---
    tags:
      - Servers
    responses:
      200:
        description: 星球列表
        schema:
          type: object
          properties:
            servers:
              type: array
              items:
                type: object
                properties:
                  id:
                    type: string
                  name:
                    type: string
                  owner:
                    type: string
    """
    caller = resolve_caller()
    servers = get_entity_access().list_servers(caller)
    items = []
    for server in servers:
        item = _server_summary(server)
        item["viewer"] = evaluate_access(server, principal_of(caller)).to_dict()
        items.append(item)
    return jsonify({"servers": items})


@servers_bp.route("/servers", methods=["POST"])
def create_server():
    """
    创建星球
    ---
    tags:
      - Servers
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
              example: 我的星球
            description:
              type: string
            banner_image_url:
              type: string
    responses:
      201:
        description: 星球创建成功，调用者成为所有者
      400:
        description: 参数错误
      401:
        description: 未登录
    """
    data = json_body()
    server_id = get_entity_access().create_server(
        resolve_caller(), **_server_fields(data)
    )
    return jsonify({"message": "星球创建成功", "server_id": server_id}), 201


@servers_bp.route("/servers/<server_id>", methods=["GET"])
def get_server(server_id):
    """
    获取星球详情
    ---
    description: |
      返回星球快照，以及当前调用者的授权结论（viewer），
      前端根据 viewer 决定渲染编辑、加入、退出、移除成员等操作入口。
    tags:
      - Servers
    parameters:
      - in: path
        name: server_id
        type: string
        required: true
    responses:
      200:
        description: 星球详情
      404:
        description: 星球不存在
    """
    caller = resolve_caller()
    server = get_entity_access().get_server(caller, server_id)
    return jsonify(
        {
            "server": server.model_dump(mode="json"),
            "viewer": evaluate_access(server, principal_of(caller)).to_dict(),
        }
    )


@servers_bp.route("/servers/<server_id>", methods=["PUT"])
def update_server(server_id):
    """
    编辑星球名称、简介与横幅（仅所有者/管理员）
    ---
    tags:
      - Servers
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
            description:
              type: string
            banner_image_url:
              type: string
    responses:
      200:
        description: 更新成功
      400:
        description: 参数错误
      401:
        description: 未登录
      403:
        description: 权限不足
    """
    data = json_body()
    get_community_service().update_server(
        resolve_caller(), server_id, **_server_fields(data)
    )
    return jsonify({"message": "星球信息已更新", "server_id": server_id})


@servers_bp.route("/servers/<server_id>/members", methods=["POST"])
def join_server(server_id):
    """
    加入星球
    ---
    tags:
      - Servers
    security:
      - Bearer: []
    parameters:
      - in: path
        name: server_id
        type: string
        required: true
    responses:
      200:
        description: 加入成功（已是成员时不做任何操作）
      401:
        description: 请先登录后再加入星球
      404:
        description: 星球不存在
    """
    get_community_service().join_server(resolve_caller(), server_id)
    return jsonify({"message": "已加入星球", "server_id": server_id})


@servers_bp.route("/servers/<server_id>/members/me", methods=["DELETE"])
def leave_server(server_id):
    """
    退出星球（所有者不能退出）
    ---
    tags:
      - Servers
    security:
      - Bearer: []
    parameters:
      - in: path
        name: server_id
        type: string
        required: true
    responses:
      200:
        description: 已退出星球
      401:
        description: 未登录
      403:
        description: 所有者或非成员不能退出
    """
    get_community_service().leave_server(resolve_caller(), server_id)
    return jsonify({"message": "已退出星球", "server_id": server_id})


@servers_bp.route("/servers/<server_id>/members/<member_id>", methods=["DELETE"])
def remove_member(server_id, member_id):
    """
    移除成员（仅所有者/管理员，不能移除所有者或自己）
    ---
    tags:
      - Servers
    security:
      - Bearer: []
    parameters:
      - in: path
        name: server_id
        type: string
        required: true
      - in: path
        name: member_id
        type: string
        required: true
    responses:
      200:
        description: 成员已移除
      401:
        description: 未登录
      403:
        description: 权限不足或目标不可移除
    """
    get_community_service().remove_member(resolve_caller(), server_id, member_id)
    return jsonify({"message": "成员已移除", "member_id": member_id})
