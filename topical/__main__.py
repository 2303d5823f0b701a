"""
命令行演示: python -m topical
注册一个主题，挂上应答方，然后发出请求并打印结果
"""
import asyncio
import logging

from topical.config.logging import setup_logging
from topical.config.settings import get_settings
from topical.core import TopicalPubSub

logger = logging.getLogger("topical.demo")


async def run_demo() -> str:
    bus = TopicalPubSub()
    bus.add_topic("greeting")

    def responder(payload):
        bus.respond(payload["trackingNo"], f"hello, {payload['query']}")

    bus.listen(bus.topics.GREETING, responder)

    answer = await bus.request(bus.topics.GREETING, "world")
    logger.info(f"收到响应: {answer}")

    bus.cancel_all()
    return answer


def main():
    settings = get_settings()
    setup_logging(settings.LOG_LEVEL, settings.LOG_FILE)
    print(asyncio.run(run_demo()))


if __name__ == "__main__":
    main()
