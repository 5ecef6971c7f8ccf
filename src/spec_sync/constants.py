"""Project-wide constants for spec-sync."""

MASTER_BRANCH = "master"
REBASED_SUFFIX = "-rebased"

DEFAULT_MERGE_MESSAGE = "Update to ruby/spec@"
SPECS_PREFIX = "spec/ruby"
MSPEC_PREFIX = "spec/mspec"
RUBYSPEC_DIR_NAME = "rubyspec"

CI_WORKFLOW_PATH = ".github/workflows/ci.yml"
CI_EXCLUDED_PATHSPEC = ":!.github"
SPECS_CI_JOB = "specs"
MSPEC_CI_JOB = "test"
MASTER_RUBY = "ruby-master"
SPECS_TEST_COMMAND = "../mspec/bin/mspec -j"
MSPEC_TEST_COMMAND = "bundle install && bundle exec rspec"
DEFAULT_SHELL = "/bin/sh"

MAX_REBASED_BRANCH_AGE_DAYS = 7
MAX_LAST_MERGE_AGE_DAYS = 60
SECONDS_PER_DAY = 86400
