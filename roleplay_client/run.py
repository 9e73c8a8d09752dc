#!/usr/bin/env python3
"""
Roleplay Hub - Flask应用启动文件
"""

import logging
import os

from roleplay import create_app


def main():
    """主函数 - 启动Flask应用"""
    # 获取配置名称，默认为development
    config_name = os.getenv("FLASK_ENV", "development")

    logging.basicConfig(
        level=os.getenv("LOG_LEVEL", "INFO"),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    # 创建Flask应用实例
    app = create_app(config_name)

    # 获取端口，默认为5000
    port = int(os.getenv("PORT", 5000))

    # 获取主机地址，默认为0.0.0.0（允许外部访问）
    host = os.getenv("HOST", "0.0.0.0")

    # 获取调试模式，默认为True
    debug = os.getenv("FLASK_DEBUG", "True").lower() == "true"

    print(f"Starting Roleplay Hub on {host}:{port}")
    print(f"Environment: {config_name}")
    print(f"Debug mode: {debug}")
    print(f"Entity transport: {app.config['ENTITY_TRANSPORT']}")

    app.run(host=host, port=port, debug=debug)


if __name__ == "__main__":
    main()
