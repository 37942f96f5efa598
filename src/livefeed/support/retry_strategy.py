INFINITE_RETRIES = 0
DEFAULT_RETRY_INTERVAL = 1000     # milliseconds


class RetryStrategy:
    """
    Decides if another connection attempt may be made, and how long to wait before making it.
    The base strategy never retries.
    """
    def __call__(self, retries_done, aborted=False):
        """
        :param retries_done: the number of reconnect attempts made since the last successful open
        :param aborted: True when the caller asked for reconnection to stop
        :return: the delay in seconds before the next attempt, or None if no attempt should be made.
        """
        return None


class BudgetRetryStrategy(RetryStrategy):
    """
    Allows a fixed number of reconnect attempts, each after the same delay.

    :param max_retries: the number of attempts allowed after a failure. INFINITE_RETRIES (0) means unlimited.
    :param retry_interval: the delay before each attempt, in milliseconds.
    """

    def __init__(self, max_retries=INFINITE_RETRIES, retry_interval=DEFAULT_RETRY_INTERVAL):
        if not isinstance(max_retries, int) or isinstance(max_retries, bool) or max_retries < 0:
            raise ValueError("max_retries must be a non-negative integer, got %r" % (max_retries,))
        if not isinstance(retry_interval, (int, float)) or isinstance(retry_interval, bool) or retry_interval < 0:
            raise ValueError("retry_interval must be a non-negative number of milliseconds, got %r" %
                             (retry_interval,))
        self.max_retries = max_retries
        self.retry_interval = retry_interval

    @property
    def unlimited(self):
        return self.max_retries == INFINITE_RETRIES

    def __call__(self, retries_done, aborted=False):
        if aborted:
            return None
        if self.unlimited or retries_done < self.max_retries:
            return self.retry_interval / 1000.0
        return None

    def __eq__(self, other):
        return isinstance(other, BudgetRetryStrategy) and \
            (self.max_retries, self.retry_interval) == (other.max_retries, other.retry_interval)

    def __ne__(self, other):
        return not self.__eq__(other)

    def __repr__(self):
        return "BudgetRetryStrategy(max_retries=%r, retry_interval=%r)" % (self.max_retries, self.retry_interval)
