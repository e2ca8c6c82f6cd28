import asyncio
import logging
import signal
from typing import Any

from asgiref.sync import async_to_sync, sync_to_async
from django.conf import settings
from django.core.management.base import BaseCommand, CommandParser
from tornado import autoreload
from typing_extensions import override

settings.RUNNING_INSIDE_TORNADO = True

from chirp.tornado.handlers import create_tornado_application
from chirp.tornado.event_queue import dump_event_queues, setup_event_queue


class Command(BaseCommand):
    help = "Starts a Tornado server serving the live channels (event queues)."

    @override
    def add_arguments(self, parser: CommandParser) -> None:
        parser.add_argument(
            "addrport",
            nargs="?",
            help="[optional port number or ipaddr:port]",
        )

    @override
    def handle(self, *args: Any, **options: Any) -> None:
        addrport = options["addrport"]
        assert isinstance(addrport, str | None)

        from tornado import httpserver

        if addrport is None:
            addr, port = "127.0.0.1", settings.TORNADO_PORT
        elif addrport.isdigit():
            addr, port = "127.0.0.1", int(addrport)
        else:
            addr, port_str = addrport.rsplit(":", 1)
            port = int(port_str)

        async def inner_run() -> None:
            from django.utils import translation

            loop = asyncio.get_running_loop()
            stop_fut = loop.create_future()

            def stop() -> None:
                if not stop_fut.done():
                    stop_fut.set_result(None)

            loop.add_signal_handler(signal.SIGINT, stop)
            loop.add_signal_handler(signal.SIGTERM, stop)
            try:
                translation.activate(settings.LANGUAGE_CODE)

                # We pass display_num_errors=False, since Django will
                # likely display similar output anyway.
                if not options["skip_checks"]:
                    self.check(display_num_errors=False)
                print(f"Tornado server (re)started on port {port}")

                logging.info("Tornado %d starting", port)
                http_server = httpserver.HTTPServer(create_tornado_application(), xheaders=True)
                http_server.listen(port, address=addr)

                await setup_event_queue(port)
                if settings.DEBUG:
                    autoreload.start()

                await stop_fut

                # Dump the queues so that the next server process can
                # restore them.
                await sync_to_async(dump_event_queues, thread_sensitive=True)(port)
                logging.info("Tornado %d stopped", port)
            finally:
                if not loop.is_closed():
                    loop.remove_signal_handler(signal.SIGINT)
                    loop.remove_signal_handler(signal.SIGTERM)

        async_to_sync(inner_run, force_new_loop=True)()
