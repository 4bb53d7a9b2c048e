import logging

from .jobs import ShouldQueue
from .provider import invoke

log = logging.getLogger(__name__)


class Dispatcher:
    """
    Call-site API. Jobs with the ShouldQueue capability go to their
    connection's provider; all others run right away in the caller.
    """

    def __init__(self, app):
        self.app = app

    def dispatch(self, job):
        if isinstance(job, ShouldQueue):
            return self.dispatch_to_queue(job)
        return self.dispatch_now(job)

    def dispatch_to_queue(self, job) -> bool:
        provider = self.app.queue.get_provider(getattr(job, "connection", None))
        return provider.push(job)

    def dispatch_now(self, job):
        log.debug("running %r synchronously", job)
        return invoke(job)

    def dispatch_if(self, condition, job):
        if condition:
            return self.dispatch(job)
        return None

    def dispatch_unless(self, condition, job):
        return self.dispatch_if(not condition, job)

    def dispatch_after_response(self, job):
        """
        Run the job when the application terminates. Best effort: nothing is
        stored, so a process that dies first loses the job.
        """
        self.app.terminating(lambda: self.dispatch_now(job))


def dispatch(app, job):
    return app.dispatcher.dispatch(job)
