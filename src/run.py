from tornado import options
import signal
import sys

import tornado.ioloop

import config_from_environs
from sizeguard import server


def sigint_handler(sig, frame):
    io_loop = tornado.ioloop.IOLoop.current()
    io_loop.add_callback_from_signal(io_loop.stop)

signal.signal(signal.SIGINT, sigint_handler)

if __name__ == "__main__":
    config_from_environs.apply_environment()
    if len(sys.argv) == 2 and not sys.argv[1].startswith('--'):
        options.parse_config_file(sys.argv[1])
    else:
        options.parse_command_line()
    server.main()
