"""GraphQL documents for the paginated repository connections.

Every query requests ``rateLimit`` alongside the connection so that each page
reports the quota it leaves behind.
"""

RATE_LIMIT_FRAGMENT = """
  rateLimit {
    limit
    cost
    remaining
    resetAt
  }
"""

PULL_REQUESTS_QUERY = (
    """
query PullRequests($owner: String!, $name: String!, $first: Int!, $after: String) {
  repository(owner: $owner, name: $name) {
    pullRequests(first: $first, after: $after, orderBy: {field: CREATED_AT, direction: DESC}) {
      pageInfo {
        hasNextPage
        endCursor
      }
      nodes {
        number
        title
        state
        createdAt
        mergedAt
        author {
          login
        }
        additions
        deletions
        changedFiles
        reviews {
          totalCount
        }
      }
    }
  }
"""
    + RATE_LIMIT_FRAGMENT
    + "}\n"
)

COMMITS_QUERY = (
    """
query Commits($owner: String!, $name: String!, $first: Int!, $after: String, $since: GitTimestamp, $until: GitTimestamp) {
  repository(owner: $owner, name: $name) {
    defaultBranchRef {
      target {
        ... on Commit {
          history(first: $first, after: $after, since: $since, until: $until) {
            pageInfo {
              hasNextPage
              endCursor
            }
            nodes {
              oid
              message
              additions
              deletions
              changedFilesIfAvailable
              author {
                name
                email
                date
              }
              parents(first: 2) {
                totalCount
              }
            }
          }
        }
      }
    }
  }
"""
    + RATE_LIMIT_FRAGMENT
    + "}\n"
)

REVIEW_COMMENTS_QUERY = (
    """
query ReviewComments($owner: String!, $name: String!, $number: Int!, $first: Int!, $after: String) {
  repository(owner: $owner, name: $name) {
    pullRequest(number: $number) {
      comments(first: $first, after: $after) {
        pageInfo {
          hasNextPage
          endCursor
        }
        nodes {
          id
          body
          createdAt
          author {
            login
          }
        }
      }
    }
  }
"""
    + RATE_LIMIT_FRAGMENT
    + "}\n"
)

RELEASES_QUERY = (
    """
query Releases($owner: String!, $name: String!, $first: Int!, $after: String) {
  repository(owner: $owner, name: $name) {
    releases(first: $first, after: $after, orderBy: {field: CREATED_AT, direction: DESC}) {
      pageInfo {
        hasNextPage
        endCursor
      }
      nodes {
        name
        tagName
        createdAt
        publishedAt
        isPrerelease
        isDraft
      }
    }
  }
"""
    + RATE_LIMIT_FRAGMENT
    + "}\n"
)

DEPLOYMENTS_QUERY = (
    """
query Deployments($owner: String!, $name: String!, $first: Int!, $after: String) {
  repository(owner: $owner, name: $name) {
    deployments(first: $first, after: $after, orderBy: {field: CREATED_AT, direction: DESC}) {
      pageInfo {
        hasNextPage
        endCursor
      }
      nodes {
        id
        createdAt
        environment
        state
        ref {
          name
        }
      }
    }
  }
"""
    + RATE_LIMIT_FRAGMENT
    + "}\n"
)

TAGS_QUERY = (
    """
query Tags($owner: String!, $name: String!, $first: Int!, $after: String) {
  repository(owner: $owner, name: $name) {
    refs(refPrefix: "refs/tags/", first: $first, after: $after, orderBy: {field: TAG_COMMIT_DATE, direction: DESC}) {
      pageInfo {
        hasNextPage
        endCursor
      }
      nodes {
        name
        target {
          ... on Commit {
            committedDate
          }
          ... on Tag {
            tagger {
              date
            }
            target {
              ... on Commit {
                committedDate
              }
            }
          }
        }
      }
    }
  }
"""
    + RATE_LIMIT_FRAGMENT
    + "}\n"
)
