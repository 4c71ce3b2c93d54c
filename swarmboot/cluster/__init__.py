"""
The components bootstrapping a cluster, from leaf to root:

* :class:`installer.RuntimeInstaller` makes the container runtime available
* :class:`initializer.ClusterInitializer` creates the cluster on the leader
* :class:`broker.CredentialBroker` issues role scoped join tokens
* :class:`joiner.MembershipJoiner` admits the remaining hosts
* :class:`view.ClusterStateView` reports the members

:class:`builder.ClusterBuilder` runs them as one pipeline.
"""
