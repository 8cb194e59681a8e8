# Transport package.
#
#   probe:        one-shot reachability test against the direct store
#   direct:       REST + event-stream access straight to the store
#   proxy:        stateless HTTP access through the relay
#   subscription: cancellable full-snapshot subscription handle
#   selector:     decides Direct vs Proxy once and routes every operation
from blogdata.transport.selector import TransportSelector
from blogdata.transport.subscription import Subscription

__all__ = ["TransportSelector", "Subscription"]
