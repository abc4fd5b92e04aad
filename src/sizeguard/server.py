import json
import logging
import logging.config
import os
from time import perf_counter

import tornado
import tornado.httpserver
import tornado.ioloop
from prometheus_client import start_http_server
from tornado.escape import json_decode
from tornado.options import define, options
from tornado.web import Application, RequestHandler, HTTPError

from sizeguard import monitoring as mon
from sizeguard.accounting import archive
from sizeguard.accounting.archive import UnsupportedFormat, ListingError
from sizeguard.accounting.quota import QuotaPolicy
from sizeguard.accounting.service import SizeAccounting
from sizeguard.accounting.upload import UploadStatError
from sizeguard.accounting.util import SizeUnit

BASEDIR = os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

define('debug', help="Enable debug output for tornado", default=False)
define('port', help="Port of this server", default=8888)
define('address', help="Address of this server", default="localhost")
define('storage_root', help="Directory all request paths are resolved against",
       default='/var/lib/sizeguard')
define('max_body_size', help="Maximum size of a request body", default=1024 * 1024)
define('prometheus_port', help="Port to start the prometheus metrics server on",
       default=None, type=int)
define('logging_config',
       help="Config file for logging, "
            "see https://docs.python.org/3/library/logging.config.html",
       default=os.path.join(BASEDIR, 'logging.json'))

logger = logging.getLogger(__name__)

LISTING_ERROR_STATUS = {
    archive.ListingToolUnavailable: 503,
    archive.ListingTimeout: 504,
    archive.ListingFailed: 422,
}


# noinspection PyAbstractClass
class AccountingHandler(RequestHandler):
    """Base for the JSON endpoints: parses the body, resolves paths, counts errors."""
    SUPPORTED_METHODS = ('POST',)
    _start_time = None

    def initialize(self, accounting, storage_root):
        """
        :param accounting: SizeAccounting instance shared by all requests
        :param storage_root: Directory request paths are relative to
        """
        self.accounting = accounting  # type: SizeAccounting
        self.storage_root = os.path.realpath(storage_root)
        self.body = None

    def prepare(self):
        self._start_time = perf_counter()
        mon.REQ_IN_PROGRESS.inc()
        try:
            self.body = json_decode(self.request.body)
        except ValueError:
            raise HTTPError(400, reason="Body is not valid JSON")
        if not isinstance(self.body, dict):
            raise HTTPError(400, reason="Body must be a JSON object")

    def write_error(self, status_code, **kwargs):
        reason = self._reason
        mon.HTTP_ERROR.labels(reason).inc()
        self.finish({'error': status_code, 'reason': reason})

    def on_finish(self):
        if self._start_time is None:
            return
        mon.REQ_IN_PROGRESS.dec()
        mon.REQ_RESPONSE.observe(perf_counter() - self._start_time)

    def field(self, name, default=KeyError):
        try:
            return self.body[name]
        except KeyError:
            if default is KeyError:
                raise HTTPError(400, reason="Missing field '{}'".format(name))
            return default

    def size_field(self, name, default=KeyError):
        value = self.field(name, default)
        if value is None and default is None:
            return None
        try:
            return SizeUnit.parse(value)
        except (TypeError, ValueError):
            raise HTTPError(400, reason="Field '{}' is not a byte count".format(name))

    def resolve(self, relative_path):
        """Map a request path below the storage root, refusing anything that escapes it."""
        if not isinstance(relative_path, str) or not relative_path:
            raise HTTPError(400, reason="Paths must be non-empty strings")
        if '\x00' in relative_path:
            raise HTTPError(400, reason="Paths must not contain NUL bytes")
        path = os.path.realpath(os.path.join(self.storage_root, relative_path.lstrip('/')))
        if path != self.storage_root and not path.startswith(self.storage_root + os.sep):
            raise HTTPError(403, reason="Path outside of the storage root")
        return path

    def quota_response(self, response, check):
        """Add 'within_quota' when the caller sent its current usage and quota."""
        used = self.size_field('used', None)
        quota = self.size_field('quota', None)
        if used is not None and quota is not None:
            response['within_quota'] = check(used, quota)
        return response


# noinspection PyMethodOverriding,PyAbstractClass
class UploadVerifyHandler(AccountingHandler):

    async def post(self):
        path = self.resolve(self.field('path'))
        declared_size = self.size_field('declared_size')
        try:
            result = await self.accounting.verify_file_size(path, declared_size)
        except UploadStatError as error:
            if error.not_found:
                raise HTTPError(404, reason="Uploaded file not found")
            raise HTTPError(500, reason="Could not stat uploaded file")
        max_file_size = self.size_field('max_file_size', None)
        self.write(self.quota_response(
            {'valid': result.is_valid, 'actual_size': result.actual_size},
            lambda used, quota: QuotaPolicy.upload(result, used, quota, max_file_size)))


# noinspection PyMethodOverriding,PyAbstractClass
class ArchiveSizeHandler(AccountingHandler):

    async def post(self):
        path = self.resolve(self.field('path'))
        archive_format = self.field('format', None)
        try:
            if archive_format is None:
                archive_format = archive.ArchiveFormat.from_path(self.field('path'))
            else:
                archive_format = archive.ArchiveFormat.from_token(archive_format)
            size = await self.accounting.get_archive_uncompressed_size(path, archive_format)
        except UnsupportedFormat:
            raise HTTPError(415, reason="Unsupported archive format")
        except ListingError as error:
            raise HTTPError(LISTING_ERROR_STATUS.get(type(error), 422),
                            reason="Archive contents could not be verified")
        self.write(self.quota_response(
            {'format': archive_format.value.lstrip('.'), 'size': size},
            lambda used, quota: QuotaPolicy.extract(used, quota, size)))


# noinspection PyMethodOverriding,PyAbstractClass
class InputSizeHandler(AccountingHandler):

    async def post(self):
        paths = self.field('paths')
        if not isinstance(paths, list):
            raise HTTPError(400, reason="Field 'paths' must be a list")
        size = await self.accounting.calculate_input_size([self.resolve(path) for path in paths])
        self.write(self.quota_response(
            {'size': size},
            lambda used, quota: QuotaPolicy.compress(used, quota, size)))


def configure_logging():
    file = options.logging_config
    if not os.path.exists(file):
        print('logging configuration {} not found, ignoring'.format(file))
        return
    with open(file, 'r') as conf:
        conf_dictionary = json.load(conf)
        logging.config.dictConfig(conf_dictionary)


def main():
    configure_logging()
    application = make_app(debug=options.debug)

    if options.prometheus_port:
        start_http_server(options.prometheus_port)

    if options.debug:
        application.listen(address=options.address, port=options.port)
    else:
        server = tornado.httpserver.HTTPServer(application,
                                               xheaders=True,
                                               max_body_size=options.max_body_size)
        server.bind(options.port, address=options.address)
        server.start()
    logger.info('Listening on %s:%s, storage root %s', options.address, options.port, options.storage_root)
    tornado.ioloop.IOLoop.current().start()


def make_app(accounting=None, storage_root=None, debug=False):
    if accounting is None:
        accounting = SizeAccounting()
    if storage_root is None:
        storage_root = options.storage_root

    handler_args = dict(accounting=accounting, storage_root=storage_root)
    application = Application([
        (r'^/api/v0/uploads/verify$', UploadVerifyHandler, handler_args),
        (r'^/api/v0/archives/size$', ArchiveSizeHandler, handler_args),
        (r'^/api/v0/inputs/size$', InputSizeHandler, handler_args),
    ], debug=debug)
    return application
