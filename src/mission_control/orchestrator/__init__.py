"""Claim-based job queue and execution pipeline.

Why not Celery / RQ / Dramatiq?
~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~
Jobs here are long blocking runs of external CLI agents whose output has to
be parsed, scored and fanned out into further jobs (QA reviews,
decompositions, integrations, challenge boards).  The queue itself is the
easy part; the job table is also the audit trail, the review record and the
place humans requeue or force-approve from.

A broker would add an operational dependency for a single-datastore tool
while still needing every piece of the post-execution state machine as
custom task code.  A conditional ``UPDATE ... WHERE status = 'queued'`` on
SQLite is the only mutual exclusion primitive, so any number of schedulers
can run against the same database file.
"""
