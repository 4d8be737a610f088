"""项目内使用的自定义异常定义。"""


class ImageReformatError(Exception):
    """基础异常类型。"""


class InvalidConfigurationError(ImageReformatError):
    """配置不合法时抛出。"""


class ProcessingAborted(ImageReformatError):
    """任务被用户中断时抛出。"""


class OutputFolderError(ImageReformatError):
    """输出目录无法确定或无法创建，整个批次终止。"""


class OutputPathError(ImageReformatError):
    """无法为输出文件找到不冲突的文件名。"""
