import threading
from unittest import TestCase
from unittest.mock import Mock

import pytest
from hamcrest import assert_that, calling, contains_exactly, empty, has_properties, instance_of, is_, raises

from livefeed.connection import ConnectionManager, ConnectionState, ChannelConnectionError, timer_scheduler
from livefeed.support.retry_strategy import BudgetRetryStrategy, INFINITE_RETRIES
from livefeed.transport.base import TransportError, TransportNotOpenError
from livefeed.transport.memory import MemoryServer

endpoint = 'ws://localhost/socket'


class ManualScheduler:
    """ collects scheduled calls so tests decide when each delay elapses. """

    def __init__(self):
        self.pending = []

    def __call__(self, delay, fn):
        self.pending.append((delay, fn))

    def run_next(self):
        delay, fn = self.pending.pop(0)
        fn()
        return delay


class ConnectionManagerTest(TestCase):

    def setUp(self):
        self.server = MemoryServer()
        self.scheduler = ManualScheduler()
        self.listeners = {kind: Mock() for kind in ('opened', 'closed', 'error', 'message')}

    def manager(self, max_retries=INFINITE_RETRIES, retry_interval=50, factory=None):
        sut = ConnectionManager(endpoint, factory or self.server.transport_factory,
                                BudgetRetryStrategy(max_retries, retry_interval), self.scheduler, log=Mock())
        for kind, listener in self.listeners.items():
            sut.events.add(kind, listener)
        return sut

    def error(self):
        return self.listeners['error'].call_args[0][0]

    def test_constructor(self):
        sut = self.manager()
        assert_that(sut.state, is_(ConnectionState.IDLE))
        assert_that(sut.is_opened(), is_(False))
        assert_that(sut.retries_done, is_(0))
        assert_that(sut.aborted, is_(False))

    def test_connect_opens(self):
        sut = self.manager()
        sut.connect()
        assert_that(sut.state, is_(ConnectionState.OPEN))
        assert_that(sut.is_opened(), is_(True))
        self.listeners['opened'].assert_called_once_with()
        assert_that(self.server.attempts, is_(1))

    def test_connect_while_open_is_ignored(self):
        sut = self.manager()
        sut.connect()
        sut.connect()
        assert_that(self.server.attempts, is_(1))

    def test_messages_are_forwarded(self):
        sut = self.manager()
        sut.connect()
        self.server.push('[1, 2, 3]')
        self.listeners['message'].assert_called_once_with('[1, 2, 3]')

    def test_send(self):
        sut = self.manager()
        sut.connect()
        sut.send('hello')
        assert_that(self.server.received, contains_exactly('hello'))

    def test_send_when_not_open(self):
        sut = self.manager()
        assert_that(calling(sut.send).with_args('hello'), raises(TransportNotOpenError))

    def test_retry_budget_is_exhausted(self):
        self.server.reachable = False
        sut = self.manager(max_retries=3, retry_interval=50)
        sut.connect()
        delays = []
        while self.scheduler.pending:
            assert_that(sut.is_opened(), is_(False))
            assert_that(sut.state, is_(ConnectionState.RECONNECTING))
            delays.append(self.scheduler.run_next())
        assert_that(delays, contains_exactly(0.05, 0.05, 0.05))
        assert_that(self.server.attempts, is_(4))       # the first attempt and 3 retries
        assert_that(sut.state, is_(ConnectionState.ERRORED))
        self.listeners['error'].assert_called_once()
        assert_that(self.error(), is_(instance_of(ChannelConnectionError)))
        assert_that(self.error(), has_properties(endpoint=endpoint, retries=3))
        self.listeners['opened'].assert_not_called()
        self.listeners['closed'].assert_not_called()

    def test_unlimited_retries_until_abort(self):
        self.server.reachable = False
        sut = self.manager(max_retries=INFINITE_RETRIES)
        sut.connect()
        for _ in range(9):
            self.scheduler.run_next()
        assert_that(len(self.scheduler.pending), is_(1))
        assert_that(sut.retries_done, is_(10))
        self.listeners['error'].assert_not_called()

        sut.abort()
        assert_that(sut.state, is_(ConnectionState.ABORTED))
        self.scheduler.run_next()
        assert_that(self.server.attempts, is_(10))      # the pending attempt was suppressed
        assert_that(self.scheduler.pending, is_(empty()))
        assert_that(sut.state, is_(ConnectionState.ERRORED))
        assert_that(self.error().retries, is_(10))

    def test_abort_while_open_fails_on_next_close(self):
        sut = self.manager(max_retries=5)
        sut.connect()
        sut.abort()
        assert_that(sut.is_opened(), is_(True))
        self.server.drop()
        assert_that(self.scheduler.pending, is_(empty()))
        assert_that(sut.state, is_(ConnectionState.ERRORED))
        assert_that(self.error().retries, is_(0))

    def test_server_close_reconnects(self):
        sut = self.manager(max_retries=2)
        sut.connect()
        self.server.drop()
        assert_that(sut.state, is_(ConnectionState.RECONNECTING))
        assert_that(sut.is_opened(), is_(False))
        assert_that(sut.retries_done, is_(1))
        self.scheduler.run_next()
        assert_that(sut.is_opened(), is_(True))
        assert_that(self.listeners['opened'].call_count, is_(2))
        self.listeners['closed'].assert_not_called()

    def test_success_resets_retry_counter(self):
        self.server.reachable = False
        sut = self.manager(max_retries=2)
        sut.connect()
        self.scheduler.run_next()
        assert_that(sut.retries_done, is_(2))
        self.server.reachable = True
        self.scheduler.run_next()
        assert_that(sut.is_opened(), is_(True))
        assert_that(sut.retries_done, is_(0))

        # a new failure sequence gets the full budget again
        self.server.reachable = False
        self.server.drop()
        self.scheduler.run_next()
        self.scheduler.run_next()
        assert_that(self.server.attempts, is_(5))
        assert_that(self.error().retries, is_(2))

    def test_client_close_never_reconnects(self):
        sut = self.manager()
        sut.connect()
        handle = self.server.current
        sut.close()
        assert_that(handle.opened, is_(False))
        assert_that(sut.state, is_(ConnectionState.CLOSED))
        assert_that(self.scheduler.pending, is_(empty()))
        self.listeners['closed'].assert_called_once_with()
        self.listeners['error'].assert_not_called()

    def test_close_releases_the_lock_before_closing_the_handle(self):
        handle = Mock()
        sut = self.manager(factory=Mock(return_value=handle))
        sut.connect()
        sut._transport_opened(handle)
        lock_free = []

        def try_lock():
            if sut.lock.acquire(timeout=1):
                sut.lock.release()
                lock_free.append(True)

        def close():
            # the handle is closed while another thread can take the lock
            t = threading.Thread(target=try_lock)
            t.start()
            t.join()

        handle.close.side_effect = close
        sut.close()
        assert_that(lock_free, contains_exactly(True))
        self.listeners['closed'].assert_called_once_with()

    def test_close_is_terminal_once(self):
        sut = self.manager()
        sut.connect()
        sut.close()
        sut.close()
        self.listeners['closed'].assert_called_once_with()

    def test_close_after_error_fires_nothing(self):
        self.server.reachable = False
        sut = self.manager(max_retries=1)
        sut.connect()
        self.scheduler.run_next()
        sut.close()
        assert_that(sut.state, is_(ConnectionState.ERRORED))
        self.listeners['closed'].assert_not_called()

    def test_close_while_reconnecting_suppresses_retry(self):
        self.server.reachable = False
        sut = self.manager()
        sut.connect()
        sut.close()
        self.scheduler.run_next()
        assert_that(self.server.attempts, is_(1))
        assert_that(sut.state, is_(ConnectionState.CLOSED))
        self.listeners['error'].assert_not_called()

    def test_connect_after_close_is_ignored(self):
        sut = self.manager()
        sut.connect()
        sut.close()
        sut.connect()
        sut.close()
        assert_that(self.server.attempts, is_(1))
        assert_that(sut.state, is_(ConnectionState.CLOSED))
        self.listeners['opened'].assert_called_once_with()
        self.listeners['closed'].assert_called_once_with()

    def test_connect_while_reconnecting_only_clears_abort(self):
        self.server.reachable = False
        sut = self.manager()
        sut.connect()
        sut.abort()
        sut.connect()
        assert_that(sut.aborted, is_(False))
        assert_that(self.server.attempts, is_(1))
        self.scheduler.run_next()
        assert_that(self.server.attempts, is_(2))
        self.listeners['error'].assert_not_called()

    def test_connect_after_error_is_ignored(self):
        self.server.reachable = False
        sut = self.manager(max_retries=1)
        sut.connect()
        self.scheduler.run_next()
        assert_that(sut.state, is_(ConnectionState.ERRORED))
        sut.connect()
        assert_that(self.server.attempts, is_(2))
        assert_that(self.scheduler.pending, is_(empty()))
        assert_that(sut.state, is_(ConnectionState.ERRORED))
        self.listeners['error'].assert_called_once()

    def test_torn_down_handle_is_detached(self):
        sut = self.manager()
        sut.connect()
        handle = self.server.current
        self.server.drop()
        assert_that(handle.events.handlers('opened'), is_(empty()))
        assert_that(handle.events.handlers('closed'), is_(empty()))
        assert_that(handle.events.handlers('message'), is_(empty()))

    def test_signals_from_superseded_handle_are_ignored(self):
        sut = self.manager()
        sut.connect()
        stale = self.server.current
        self.server.drop()
        self.scheduler.run_next()
        sut._transport_message(stale, 'late')
        sut._transport_closed(stale)
        self.listeners['message'].assert_not_called()
        assert_that(sut.is_opened(), is_(True))

    def test_factory_error_counts_as_failed_attempt(self):
        factory = Mock(side_effect=TransportError("bad endpoint"))
        sut = self.manager(max_retries=1, factory=factory)
        sut.connect()
        assert_that(sut.retries_done, is_(1))
        self.scheduler.run_next()
        assert_that(factory.call_count, is_(2))
        assert_that(self.error().retries, is_(1))

    def test_open_error_counts_as_failed_attempt(self):
        handle = Mock()
        handle.open.side_effect = TransportError("refused")
        sut = self.manager(max_retries=1, factory=Mock(return_value=handle))
        sut.connect()
        assert_that(sut.state, is_(ConnectionState.RECONNECTING))
        handle.close.assert_called_once_with()

    def test_connection_error_message(self):
        error = ChannelConnectionError(endpoint, 2)
        assert_that(str(error), is_("unable to connect to ws://localhost/socket after 2 retries"))
        assert_that(error, is_(instance_of(TransportError)))


class TimerSchedulerTest(TestCase):

    @pytest.mark.timeout(2)
    def test_runs_after_delay_on_daemon_thread(self):
        fired = threading.Event()
        timer = timer_scheduler(0.01, fired.set)
        assert_that(timer.daemon, is_(True))
        assert_that(fired.wait(1), is_(True))
