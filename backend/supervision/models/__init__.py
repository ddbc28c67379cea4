from supervision.models.defense_session import DefenseSession, DefenseSessionStatus  # noqa: F401
from supervision.models.notification import EntityKind, Notification  # noqa: F401
from supervision.models.pre_thesis import PreThesis, PreThesisStatus  # noqa: F401
from supervision.models.reference import Student, Teacher  # noqa: F401
from supervision.models.semester import Semester  # noqa: F401
from supervision.models.teacher_availability import TeacherAvailability  # noqa: F401
from supervision.models.thesis import Thesis, ThesisStatus  # noqa: F401
from supervision.models.thesis_assignment import AssignmentRole, ThesisAssignment  # noqa: F401
from supervision.models.thesis_evaluation import ThesisEvaluation, ThesisFinalGrade  # noqa: F401
from supervision.models.thesis_proposal import ProposalStatus, ThesisProposal  # noqa: F401
from supervision.models.thesis_registration import RegistrationStatus, ThesisRegistration  # noqa: F401
from supervision.models.topic import ApplicationStatus, Topic, TopicApplication, TopicStatus  # noqa: F401
