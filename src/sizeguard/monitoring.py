from time import perf_counter

import wrapt
from prometheus_client import Gauge, Histogram, Counter

REQ_IN_PROGRESS = Gauge('sizeguard_in_progress_requests',
                        'Number of requests that are in progress')

REQ_RESPONSE = Histogram('sizeguard_response_time',
                         'Time to respond to a request')

HTTP_ERROR = Counter('sizeguard_http_error', 'Number of requests that received a HTTP error response', ['reason'])

TIME_IN_UPLOAD_VERIFY = Histogram('sizeguard_wait_for_upload_verify',
                                  'Time spent comparing a merged upload against its declared size')
UPLOAD_VERIFICATIONS = Counter('sizeguard_upload_verifications',
                               'Verified uploads by outcome', ['outcome'])

TIME_IN_ARCHIVE_LISTING = Histogram('sizeguard_wait_for_archive_listing',
                                    'Time spent listing the entries of an archive', ['format'])
ARCHIVE_LISTING_ERRORS = Counter('sizeguard_archive_listing_errors',
                                 'Archive listings that failed closed', ['reason'])
ARCHIVE_EMPTY_LISTINGS = Counter('sizeguard_archive_empty_listings',
                                 'Archive listings without a single size line')

TIME_IN_DIRECTORY_WALK = Histogram('sizeguard_wait_for_directory_walk',
                                   'Time spent summing input paths for a compression')
WALK_SKIPPED_PATHS = Counter('sizeguard_walk_skipped_paths',
                             'Paths skipped while summing input paths', ['reason'])


def time(metric):
    @wrapt.decorator
    async def decorator(func, _, args, kw):
        start_time = perf_counter()
        try:
            return await func(*args, **kw)
        finally:
            metric.observe(perf_counter() - start_time)

    return decorator
